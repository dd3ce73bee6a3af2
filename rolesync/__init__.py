"""rolesync: reconcile org and space role membership against declarative config."""

__version__ = "0.3.0"
