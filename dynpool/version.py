""" dynpool version """


from importlib.metadata import version, PackageNotFoundError

def get_version():
    """ Get the version of dynpool """
    try:
        return version("dynpool")
    except PackageNotFoundError:
        return "unknown"

__version__ = get_version()
