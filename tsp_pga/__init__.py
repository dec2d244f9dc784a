"""
Distributed genetic algorithm for the travelling salesman problem: a
coordinator scatters each generation across worker processes and breeds
the next one from the globally ranked results.
"""

__all__ = [
    "coordinator",
    "data",
    "evaluation",
    "evolutionary",
    "messages",
    "organisms",
    "transport",
    "worker",
]
