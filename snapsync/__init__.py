"""A small distributed file store with a routing front server and typed storage servers."""

__version__ = "2.0.0"