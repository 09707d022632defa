"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~rpcache.exceptions.RpcacheError` subclass.
External tooling (CI scripts, shell wrappers) can inspect the exit code to
determine the failure class without parsing stderr.

Example::

    $ rpcache call example.Greeter Hello --data '{"name": "World"}'
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- the service could not be reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_UPSTREAM_ERROR = 5
"""The upstream RPC service returned an error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CACHE_STORE_ERROR = 8
"""The cache store could not be reached or returned undecodable data."""
