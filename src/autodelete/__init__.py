"""autodelete - time-boxed retention cleanup for records and their uploaded files"""

__version__ = "0.1.0"
