from .base import INVALID_FITNESS, FitnessRecord, Organism, Tour
from .scalar import ScalarIndividual, sphere
from .tour import DistanceMatrix, TspIndividual, is_permutation, random_population

__all__ = [
    "Organism",
    "FitnessRecord",
    "Tour",
    "INVALID_FITNESS",
    "DistanceMatrix",
    "TspIndividual",
    "is_permutation",
    "random_population",
    "ScalarIndividual",
    "sphere",
]
