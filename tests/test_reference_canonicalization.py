from __future__ import annotations

import pytest

from taskrelay.core.references.extract import canonicalize_id, id_from_url

RAW_ID = "0f1e2d3c4b5a69788796a5b4c3d2e1f0"
CANONICAL_ID = "0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0"


def test_canonicalize_is_idempotent_and_form_independent() -> None:
    hyphenated_upper = "0F1E2D3C-4B5A-6978-8796-A5B4C3D2E1F0"

    assert canonicalize_id(RAW_ID) == CANONICAL_ID
    assert canonicalize_id(hyphenated_upper) == CANONICAL_ID
    assert canonicalize_id(canonicalize_id(RAW_ID)) == CANONICAL_ID


@pytest.mark.parametrize("raw", ["", "not-an-id", "0f1e2d3c4b5a69788796a5b4c3d2e1f", "z" * 32])
def test_canonicalize_rejects_values_that_are_not_ids(raw: str) -> None:
    with pytest.raises(ValueError):
        canonicalize_id(raw)


def test_id_from_slugged_workspace_url() -> None:
    url = f"https://www.notion.so/team/Quarterly-Plan-{RAW_ID}?pvs=4"

    assert id_from_url(url) == CANONICAL_ID
    assert id_from_url("https://example.com/no-id-here") is None
