from exception_notify.filters import FILTERED, FilterPolicy, redact


def test_redacts_top_level_and_nested_keys():
    structure = {
        "password": "p",
        "user": {"name": "kim", "credentials": {"token": "t", "api_key": "k"}},
    }

    result = redact(structure, ["password", "token", "api_key"])

    assert result == {
        "password": FILTERED,
        "user": {"name": "kim", "credentials": {"token": FILTERED, "api_key": FILTERED}},
    }


def test_redacts_inside_lists_of_mappings():
    result = redact({"items": [{"secret": 1}, {"other": 2}]}, ["secret"])

    assert result == {"items": [{"secret": FILTERED}, {"other": 2}]}


def test_matching_ignores_case():
    policy = FilterPolicy(["Password"])

    assert policy.redact({"PASSWORD": "p", "password": "q"}) == {"PASSWORD": FILTERED, "password": FILTERED}


def test_only_exact_key_names_are_redacted():
    policy = FilterPolicy(["password"])

    result = policy.redact({"password_hint": "h", "list": ["password"]})

    assert result == {"password_hint": "h", "list": ["password"]}


def test_input_is_not_modified():
    original = {"password": "p", "nested": {"password": "q"}}

    redact(original, ["password"])

    assert original == {"password": "p", "nested": {"password": "q"}}


def test_leaf_values_pass_through():
    policy = FilterPolicy(["password"])

    assert policy.redact("password") == "password"
    assert policy.redact(None) is None
    assert policy.redact(("a", {"password": 1})) == ("a", {"password": FILTERED})


def test_session_id_redacted_for_secure_requests():
    policy = FilterPolicy([])

    assert policy.redact_session({"session_id": "abc", "user_id": 1}, secure=True) == {
        "session_id": FILTERED,
        "user_id": 1,
    }


def test_session_id_kept_for_plain_requests():
    policy = FilterPolicy([])

    assert policy.redact_session({"session_id": "abc"}, secure=False) == {"session_id": "abc"}


def test_non_mapping_session_becomes_empty():
    assert FilterPolicy(["password"]).redact_session(["not", "a", "session"]) == {}


def test_secure_session_without_id_still_gets_filtered_id():
    policy = FilterPolicy([])

    assert policy.redact_session({"user_id": 1}, secure=True) == {"user_id": 1, "session_id": FILTERED}
    assert policy.redact_session(None, secure=True) == {"session_id": FILTERED}
