"""
gscf — Python client for the GSCF / DBNP study-data API.

Module layout
-------------
config.py     — ClientConfig, wire constants, env variable names, file formats
errors.py     — GSCFError and one subclass per failure kind
transport.py  — form POST over requests, transport failure translation
identity.py   — device id derivation (hardware address / hostname, script, user)
session.py    — Credentials, SessionState, the authenticate handshake
store.py      — versioned on-disk {token, sequence} record per device
validator.py  — lazy session resolution, sequence advance, validation hash
client.py     — ApiClient.call with one-shot resync on 401
cache.py      — read-through response cache
entities.py   — study / subject / assay / sample / measurement records

Public interface
----------------
Configure and call:
    client = ApiClient(ClientConfig(base_url, username, password, api_key))
    client.call("getStudies")

Or from GSCF_* environment variables:
    client = ApiClient.from_env()

Browse entities:
    for study in get_studies(client):
        study.assays()
"""

from .client import ApiClient
from .config import ClientConfig, PERSIST_ON_CHANGE, PERSIST_ON_CLOSE
from .entities import (
    Assay,
    Measurement,
    Sample,
    Study,
    Subject,
    get_assays_for_study,
    get_measurement_data_for_assay,
    get_samples_for_assay,
    get_studies,
    get_subjects_for_study,
)
from .errors import (
    AuthenticationFailed,
    ConfigurationError,
    Conflict,
    GSCFError,
    ServerUnavailable,
    TransportUnavailable,
    UnauthorizedAfterRetry,
    UnexpectedResponse,
    UnexpectedStatus,
)
from .validator import validation_hash

__all__ = [
    # Client
    "ApiClient",
    "ClientConfig",
    "PERSIST_ON_CHANGE",
    "PERSIST_ON_CLOSE",
    "validation_hash",
    # Entities
    "Study",
    "Subject",
    "Assay",
    "Sample",
    "Measurement",
    "get_studies",
    "get_subjects_for_study",
    "get_assays_for_study",
    "get_samples_for_assay",
    "get_measurement_data_for_assay",
    # Errors
    "GSCFError",
    "TransportUnavailable",
    "AuthenticationFailed",
    "ServerUnavailable",
    "Conflict",
    "UnexpectedStatus",
    "UnauthorizedAfterRetry",
    "UnexpectedResponse",
    "ConfigurationError",
]
