# tests/application/services/test_redactor.py
from application.services.redactor import mask_dict, mask_value


class TestMaskValue:
    def test_mask_authorization(self):
        assert mask_value("authorization", "Bearer token123") == "********"

    def test_mask_cookie(self):
        assert mask_value("cookie", "session=abc123") == "********"

    def test_mask_api_key(self):
        assert mask_value("X-Api-Key", "k-123") == "********"

    def test_mask_case_insensitive(self):
        assert mask_value("Authorization", "token") == "********"
        assert mask_value("COOKIE", "data") == "********"

    def test_no_mask_regular_key(self):
        assert mask_value("Content-Type", "application/json") == "application/json"

    def test_mask_none_value(self):
        assert mask_value("authorization", None) is None


class TestMaskDict:
    def test_mask_headers(self):
        headers = {
            "Authorization": "Bearer abc",
            "Accept": "application/json",
            "Cookie": "sid=1",
        }
        assert mask_dict(headers) == {
            "Authorization": "********",
            "Accept": "application/json",
            "Cookie": "********",
        }

    def test_mask_dict_empty(self):
        assert mask_dict({}) == {}
        assert mask_dict(None) == {}

    def test_original_is_not_modified(self):
        headers = {"Authorization": "Bearer abc"}
        mask_dict(headers)
        assert headers == {"Authorization": "Bearer abc"}
