import json

import pytest

from menu_admin.otel_instrumentation import PREVIEW_LIMIT, _redact, _summarize, instrument_operation


def test_images_are_left_out_of_previews():
    preview = _redact({"args": [[{"name": "Tea", "image": "data:image/png;base64,AAAA"}]]})
    assert preview == {"args": [[{"name": "Tea", "image": "<image>"}]]}


def test_long_strings_are_cut_before_encoding():
    """Test that a raw JSON import payload is shortened rather than serialized whole"""
    payload = json.dumps([{"name": "Tea", "image": "A" * 100_000}])

    redacted = _redact({"args": [payload]})

    assert len(redacted["args"][0]) == PREVIEW_LIMIT
    assert len(_summarize({"args": [payload]})) == PREVIEW_LIMIT


def test_long_lists_are_capped():
    assert len(_redact(list(range(1000)))) < 1000


class Service:
    @instrument_operation("double")
    async def double(self, value):
        if value < 0:
            raise ValueError("negative")
        return value * 2


async def test_instrumented_method_passes_results_and_errors_through():
    service = Service()
    assert await service.double(4) == 8
    with pytest.raises(ValueError, match="negative"):
        await service.double(-1)
