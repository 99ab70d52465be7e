"""
govproxy: OpenGov delegation and cleanup through a proxy account

Core imports are lazily loaded. For direct module access, import from
submodules:

    from govproxy.governance import build_cleanup_plan, VotingStateReader
    from govproxy.chain.substrate import SubstrateChainAdapter
    from govproxy.exceptions import ValidationError
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy module loading keeps `import govproxy` free of the chain client."""
    if name == 'cli':
        from .cli.main import cli
        return cli
    elif name == 'get_network':
        from .networks import get_network
        return get_network
    elif name == 'GovProxyError':
        from .exceptions import GovProxyError
        return GovProxyError
    raise AttributeError(f"module 'govproxy' has no attribute {name!r}")

__all__ = ['cli', 'get_network', 'GovProxyError']
