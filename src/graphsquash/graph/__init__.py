"""
GraphSquash Graph Package.

Node kinds that lower themselves through a SquashContext.
"""

from graphsquash.graph.nodes import (
    AddPdf,
    Collection,
    Constant,
    EntrySum,
    Exponential,
    Formula,
    Gaussian,
    NegativeLogLikelihood,
    Node,
    Observable,
    Parameter,
    Polynomial,
    Product,
    Sum,
)

__all__ = [
    "Node",
    "Collection",
    "Parameter",
    "Observable",
    "Constant",
    "Sum",
    "Product",
    "Formula",
    "Gaussian",
    "Exponential",
    "Polynomial",
    "AddPdf",
    "EntrySum",
    "NegativeLogLikelihood",
]
