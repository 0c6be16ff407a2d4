"""
Services Package - orchestration, routing and response assembly.
"""

from experience_discovery.services.assembler import DiscoveryResponse, ProvenanceEntry, ResponseAssembler
from experience_discovery.services.chaining import referenced_calls, resolve_references
from experience_discovery.services.orchestrator import Orchestrator
from experience_discovery.services.router import SPECIALISTS, CapabilityRouter, Specialist, merge_results

__all__ = [
    "CapabilityRouter",
    "DiscoveryResponse",
    "Orchestrator",
    "ProvenanceEntry",
    "ResponseAssembler",
    "SPECIALISTS",
    "Specialist",
    "merge_results",
    "referenced_calls",
    "resolve_references",
]
