"""
mtsftp: SFTP client wrapper with a shared pool of reusable test containers.
"""

__version__ = "0.1.0"
