import json

import pytest

from pharmacare.common.config import Settings
from pharmacare.common.models.directive_models import (
    ButtonModel,
    ListRowModel,
    ListSectionModel,
)
from pharmacare.state_machine.integrations.meta.api_requests import MetaAPI, MetaAPIError


class _FakeResponse:
    def __init__(self, status_code: int, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload) if payload is not None else "not json"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, response: _FakeResponse):
        self.response = response
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return self.response


SETTINGS = Settings(whatsapp_token="secret-token", phone_number_id="PN-123")


def _api(status_code=200, payload=None, settings=SETTINGS):
    session = _FakeSession(
        _FakeResponse(status_code, payload if payload is not None else {"messages": []})
    )
    return MetaAPI(settings, session=session), session


def test_send_text_posts_to_messages_endpoint():
    api, session = _api()

    api.send_text("919672618163", "Hello")

    (post,) = session.posts
    assert post["url"] == "https://graph.facebook.com/v21.0/PN-123/messages"
    assert post["headers"]["Authorization"] == "Bearer secret-token"
    assert post["json"] == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": "919672618163",
        "type": "text",
        "text": {"body": "Hello", "preview_url": False},
    }


def test_send_buttons_payload():
    api, session = _api()

    api.send_buttons(
        "919672618163",
        "Pick one",
        [ButtonModel(id="reorder", title="Reorder")],
        header="Menu",
    )

    interactive = session.posts[0]["json"]["interactive"]
    assert interactive["type"] == "button"
    assert interactive["header"] == {"type": "text", "text": "Menu"}
    assert "footer" not in interactive
    assert interactive["action"]["buttons"] == [
        {"type": "reply", "reply": {"id": "reorder", "title": "Reorder"}}
    ]


def test_send_buttons_rejects_too_many():
    api, session = _api()
    buttons = [ButtonModel(id=f"b{index}", title="Button") for index in range(4)]

    with pytest.raises(ValueError):
        api.send_buttons("919672618163", "Too many", buttons)
    assert session.posts == []


def test_send_list_payload():
    api, session = _api()
    section = ListSectionModel(
        title="Medicines", rows=[ListRowModel(id="add_1", title="Dolo 650")]
    )

    api.send_list("919672618163", "Choose", "Browse", [section])

    action = session.posts[0]["json"]["interactive"]["action"]
    assert action["button"] == "Browse"
    assert action["sections"] == [
        {"title": "Medicines", "rows": [{"id": "add_1", "title": "Dolo 650"}]}
    ]


def test_send_template_with_image_header():
    api, session = _api()

    api.send_template(
        "919672618163",
        "pharmacy_welcome",
        header_type="IMAGE",
        header_url="https://example.com/banner.png",
    )

    template = session.posts[0]["json"]["template"]
    assert template["name"] == "pharmacy_welcome"
    assert template["language"] == {"code": "en_US"}
    assert template["components"][0]["parameters"] == [
        {"type": "image", "image": {"link": "https://example.com/banner.png"}}
    ]


def test_error_response_raises_meta_api_error():
    api, _ = _api(
        status_code=400,
        payload={"error": {"message": "Invalid parameter", "code": 100}},
    )

    with pytest.raises(MetaAPIError) as excinfo:
        api.send_text("919672618163", "Hello")

    assert excinfo.value.status_code == 400
    assert excinfo.value.meta_error["code"] == 100


def test_missing_credentials_fail_before_posting():
    api, session = _api(settings=Settings())

    with pytest.raises(MetaAPIError):
        api.send_text("919672618163", "Hello")
    assert session.posts == []
