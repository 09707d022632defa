"""RPC client module for rpcache.

Provides :class:`RpcClient`, a blocking Twirp-style JSON RPC client that
wraps :mod:`httpx` and optionally routes every call through a
:class:`~rpcache.cache.decorator.CachingDecorator`.

Example::

    from rpcache.client import RpcClient

    with RpcClient("http://localhost:3001/twirp", decorator=decorator) as client:
        resp = client.call("example.hello_world.HelloWorld", "Hello", {"name": "World"})
"""

from rpcache.client.sync_client import RpcClient

__all__ = ["RpcClient"]
