"""
Study, subject, assay, sample and measurement records.

Each record is a plain frozen dataclass holding the raw fields returned by
the server plus an explicit ``client`` handle; related records are fetched
by passing that handle to the module-level fetch functions.  All fetches go
through the client's ``ResponseCache``, so repeated reads of the same
resource cost one network call per process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import UnexpectedResponse

if TYPE_CHECKING:
    from .client import ApiClient


@dataclass(frozen=True)
class Entity:
    client: ApiClient = field(repr=False, compare=False)
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def token(self) -> str | None:
        return self.fields.get("token")

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class Study(Entity):
    def subjects(self) -> list[Subject]:
        return get_subjects_for_study(self.client, self.token)

    def assays(self) -> list[Assay]:
        return get_assays_for_study(self.client, self.token)


@dataclass(frozen=True)
class Subject(Entity):
    pass


@dataclass(frozen=True)
class Assay(Entity):
    def samples(self) -> list[Sample]:
        return get_samples_for_assay(self.client, self.token)

    def measurement_data(self) -> list[Measurement]:
        return get_measurement_data_for_assay(self.client, self.token)


@dataclass(frozen=True)
class Sample(Entity):
    pass


@dataclass(frozen=True)
class Measurement(Entity):
    pass


# ---------------------------------------------------------------------------
# Fetch functions
# ---------------------------------------------------------------------------

def _fetch_records(
    client: ApiClient,
    service: str,
    args: dict,
    list_key: str,
    record_type: type[Entity],
    parameter_key: str | None = None,
) -> list:
    """
    Fetch ``service`` through the cache and wrap ``response[list_key]``.

    A response without ``list_key`` yields an empty list.

    Raises:
        UnexpectedResponse: ``list_key`` is not a list of JSON objects.
    """
    raw = client.cache.get_or_fetch(
        service,
        parameter_key,
        lambda: client.call(service, args),
    )
    items = raw.get(list_key) if isinstance(raw, dict) else None
    if items is None:
        return []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise UnexpectedResponse(
            f"'{list_key}' in the response from '{service}' is not a list of objects"
        )
    return [record_type(client=client, fields=dict(item)) for item in items]


def get_studies(client: ApiClient) -> list[Study]:
    return _fetch_records(client, "getStudies", {}, "studies", Study)


def get_subjects_for_study(client: ApiClient, study_token: str) -> list[Subject]:
    return _fetch_records(
        client,
        "getSubjectsForStudy",
        {"studyToken": study_token},
        "subjects",
        Subject,
        parameter_key=study_token,
    )


def get_assays_for_study(client: ApiClient, study_token: str) -> list[Assay]:
    return _fetch_records(
        client,
        "getAssaysForStudy",
        {"studyToken": study_token},
        "assays",
        Assay,
        parameter_key=study_token,
    )


def get_samples_for_assay(client: ApiClient, assay_token: str) -> list[Sample]:
    return _fetch_records(
        client,
        "getSamplesForAssay",
        {"assayToken": assay_token},
        "samples",
        Sample,
        parameter_key=assay_token,
    )


def get_measurement_data_for_assay(client: ApiClient, assay_token: str) -> list[Measurement]:
    return _fetch_records(
        client,
        "getMeasurementDataForAssay",
        {"assayToken": assay_token},
        "measurements",
        Measurement,
        parameter_key=assay_token,
    )
