"""Live speech-to-text service core with rolling subtitles over a WSGI API and Unix sockets."""

__version__ = "0.1.0"