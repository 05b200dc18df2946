"""Tests for mapping domain errors to HTTP responses."""

import pytest

from dataroom_rag.modules.common.constants import EXCEPTION_MAPPING
from dataroom_rag.modules.common.exceptions import (
    DataroomNotFoundError,
    DomainError,
    IndexingError,
    IndexingErrorKind,
    ResourceNotFoundError,
    ValidationError,
)
from dataroom_rag.modules.common.utils.error_handler import map_exception


def test_mapped_error_types():
    assert set(EXCEPTION_MAPPING) == {ResourceNotFoundError, ValidationError, IndexingError}


@pytest.mark.parametrize(
    "error,status_code",
    [
        (DataroomNotFoundError("Dataroom dr_1 not found"), 404),
        (ValidationError("Invalid dataroom_id", field="dataroom_id"), 422),
        (IndexingError(IndexingErrorKind.VALIDATION, "bad request"), 422),
        (IndexingError(IndexingErrorKind.EXTERNAL_SERVICE, "store unreachable"), 503),
        (IndexingError(IndexingErrorKind.PROCESSING, "conversion failed"), 500),
        (DomainError("unexpected"), 500),
    ],
)
def test_map_exception(error, status_code):
    assert map_exception(error).status_code == status_code


def test_validation_detail_names_the_field():
    detail = map_exception(ValidationError("Invalid dataroom_id", field="dataroom_id")).detail

    assert detail == {"message": "Invalid dataroom_id", "field": "dataroom_id"}
