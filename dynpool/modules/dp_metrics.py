'''
dynpool | modules | dp_metrics.py

Resource snapshots attached to every execution result.
'''

from typing import Dict

import psutil


def memory_snapshot() -> Dict[str, int]:
    '''
    Returns the resident and virtual memory of the current process, in bytes.
    '''
    memory = psutil.Process().memory_info()
    return {
        "rss": memory.rss,
        "vms": memory.vms,
    }
