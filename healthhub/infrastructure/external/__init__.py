"""Adapters for third-party health data APIs."""

from healthhub.infrastructure.external.clinicaltrials import ClinicalTrialsClient
from healthhub.infrastructure.external.npi import NPIRegistryClient
from healthhub.infrastructure.external.openfda import OpenFDAClient
from healthhub.infrastructure.external.result import Degraded, Ok, Result

__all__ = [
    "ClinicalTrialsClient",
    "Degraded",
    "NPIRegistryClient",
    "Ok",
    "OpenFDAClient",
    "Result",
]
