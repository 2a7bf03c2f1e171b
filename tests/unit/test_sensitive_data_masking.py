import pytest

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_phone_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "phone": "9812345678"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "9812345678" not in result["phone"]
        assert "***MASKED***" in result["phone"]

    def test_phone_with_country_code_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "sms to +9779812345678 failed"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "9812345678" not in result["data"]
        assert result["data"] == "sms to ***MASKED*** failed"

    def test_password_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_api_key_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "api_key: live_abc"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "***MASKED***" in result["header"]

    def test_token_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_non_sensitive_data_unchanged(self):
        from config.settings import mask_sensitive_data

        event_dict = {
            "event": "order.created",
            "short_order_id": "ORD-2026-001",
            "total_amount": "2400.00",
        }
        result = mask_sensitive_data(None, None, event_dict)
        assert result["short_order_id"] == "ORD-2026-001"
        assert result["total_amount"] == "2400.00"
        assert result["event"] == "order.created"
