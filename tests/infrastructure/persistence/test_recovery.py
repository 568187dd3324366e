from flashdeck.infrastructure.persistence import recover_json
from flashdeck.infrastructure.persistence.recovery import repair_json_text, salvage_array_items


def test_repair_trailing_commas():
    assert repair_json_text('{"a": [1, 2, ], }') == '{"a": [1, 2]}'


def test_repair_quotes_bare_keys():
    assert repair_json_text("{a: 1, b_2: 2}") == '{"a": 1, "b_2": 2}'


def test_recover_prefers_plain_decode():
    outcome = recover_json('{"a": 1}')
    assert outcome.strategy == "decode"
    assert outcome.data == {"a": 1}


def test_recover_uses_repair():
    outcome = recover_json("[1, 2,]")
    assert outcome.strategy == "repair"
    assert outcome.data == [1, 2]


def test_validator_rejection_falls_through_to_salvage():
    def only_empty(data):
        if data:
            raise ValueError("not empty")
        return data

    outcome = recover_json('[{"id": 1},]', validator=only_empty, item_validator=lambda i: True)
    assert outcome.strategy == "salvage"
    assert outcome.data == [{"id": 1}]
    assert outcome.salvaged == 1


def test_salvage_skips_nested_and_invalid_items():
    raw = '[{"id": 1}, {"id": 2, "tags": {"x": 1}}, {"id": "bad"}, {"id": 3'
    items = salvage_array_items(raw, lambda item: isinstance(item.get("id"), int))
    # The nested object's inner {"x": 1} has no "id" and is rejected too
    assert items == [{"id": 1}]


def test_salvage_only_applies_to_arrays():
    outcome = recover_json('{"id": 1', item_validator=lambda i: True)
    assert outcome.strategy is None
    assert outcome.data is None


def test_nothing_recoverable():
    outcome = recover_json('[{"id": 1', item_validator=lambda i: True)
    assert outcome.strategy is None
