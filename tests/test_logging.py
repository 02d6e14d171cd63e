import logging

from lanebot.logging import (
    SafeStreamHandler,
    redact_token,
    redact_token_processor,
    setup_logging,
)


class TestRedactToken:
    def test_redacts_bot_token_in_url(self) -> None:
        text = redact_token(
            "https://api.telegram.org/bot123456789:ABCdefGHI_jkl/getUpdates"
        )
        assert "123456789" not in text
        assert "bot[REDACTED]" in text

    def test_redacts_bare_token(self) -> None:
        text = redact_token("Token is 123456789:ABCDEFGHIJ_klmnop")
        assert "123456789" not in text
        assert "[REDACTED_TOKEN]" in text

    def test_no_token_unchanged(self) -> None:
        assert redact_token("update 42 for chat 7") == "update 42 for chat 7"

    def test_processor_redacts_every_string_field(self) -> None:
        event = {
            "event": "telegram.network_error",
            "url": "https://api.telegram.org/bot1:abcdefghijkl/getMe",
            "update_id": 5,
        }
        result = redact_token_processor(None, "error", event)
        assert result["url"] == "https://api.telegram.org/bot[REDACTED]/getMe"
        assert result["update_id"] == 5
        assert result["event"] == "telegram.network_error"


class TestSetupLogging:
    def test_setup_debug_mode(self) -> None:
        setup_logging(debug=True)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h, SafeStreamHandler) for h in root.handlers)

    def test_setup_info_mode_quiets_http_libraries(self) -> None:
        setup_logging(debug=False)
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
