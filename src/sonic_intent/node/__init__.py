"""Device sessions and the checks operations run against them."""
from .dependency import DependencyChecker
from .interface import Interface
from .node import Node, default_holder
from .precondition import PreconditionChecker

__all__ = [
    "Node",
    "Interface",
    "PreconditionChecker",
    "DependencyChecker",
    "default_holder",
]
