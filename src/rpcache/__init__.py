"""rpcache -- HTTP-style ``Cache-Control`` caching for synchronous RPC calls.

This package puts a caching layer in front of a blocking RPC call. Callers
pass a ``Cache-Control`` directive string with each request and the cache
honours ``max-age``, ``no-cache``, ``no-store``, ``stale-while-revalidate``
and ``stale-if-error`` against a compare-and-swap key-value store, refreshing
stale entries on a bounded pool of background workers.

Typical usage::

    from rpcache.cache import CachingDecorator, MemoryCacheStore, RevalidationScheduler
    from rpcache.client import RpcClient

    decorator = CachingDecorator(MemoryCacheStore(), RevalidationScheduler())
    with RpcClient("http://localhost:3001/twirp", decorator=decorator) as client:
        response = client.call(
            "example.hello_world.HelloWorld",
            "Hello",
            {"name": "World"},
            headers={"Cache-Control": "max-age=2, stale-while-revalidate=2"},
        )
        print(response.payload, response.cache_status, response.age)

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr diagnostics with Rich support.
"""

__version__ = "0.1.0"
