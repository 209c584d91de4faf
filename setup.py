'''
dynpool | setup.py
Called to setup the dynpool package.
'''

from setuptools import setup, find_packages

# README.md > long_description
with open('README.md', encoding='utf-8') as long_description_file:
    long_description = long_description_file.read()

# requirements.txt > requirements
with open('requirements.txt', encoding="UTF-8") as requirements_file:
    install_requires = requirements_file.read().splitlines()

extras_require = {
    'test': [
        'pylint',
        'pytest',
        'pytest-cov',
        'pytest-timeout',
        'pytest-asyncio',
    ]
}

if __name__ == "__main__":

    setup(
        name = 'dynpool',

        version = '0.1.0',

        install_requires = install_requires,

        extras_require = extras_require,

        packages = find_packages(include=['dynpool', 'dynpool.*']),

        python_requires = '>=3.10',

        description = 'Run dynamically supplied Python functions in a pool of worker processes.',

        long_description = long_description,

        long_description_content_type = 'text/markdown',

        classifiers = [
            'Intended Audience :: Developers',
            'License :: OSI Approved :: MIT License',
            'Operating System :: OS Independent',
            'Programming Language :: Python',
            'Programming Language :: Python :: 3',
        ],

        include_package_data = True,

        entry_points = {
            'console_scripts': [
                'dynpool = dynpool.cli.entry:dynpool_cli'
            ]
        },

        keywords = ['multiprocessing', 'worker pool', 'bundler', 'python', 'library'],

        license = 'MIT'
    )
