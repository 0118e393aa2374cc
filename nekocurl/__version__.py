__title__ = "nekocurl"
__description__ = "A pluggable async HTTP client with a self-contained socket driver."
__version__ = "1.0.0"
