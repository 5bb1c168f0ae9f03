"""BookMarkDown: bookmark collections kept as Markdown in a GitHub Gist."""

__version__ = "0.4.0"
