"""
Graph — nodnod dependency graphs.

    from storefront import graph as G

    @G.node
    class FetchLinkNode:
        @classmethod
        async def __compose__(cls, spec: SpecNode) -> "FetchLinkNode":
            return cls(await spec.ledger.find_link(spec.payment_intent_id))

    node = await G.run(FinalResultNode).inject(spec)
"""

from nodnod import scalar_node as node

from storefront.graph._run import (
    TypedScope,
    Compiled,
    Run,
    graph,
    run,
)

__all__ = (
    "node",
    "TypedScope",
    "Compiled",
    "Run",
    "graph",
    "run",
)
