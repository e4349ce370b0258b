from .profile import ConnectionProfile

__all__ = ['ConnectionProfile']
