"""Tools for distributed-systems experiments: a value codec, a linearizability checker and MapReduce."""

__version__ = "0.1.0"