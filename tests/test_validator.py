import pytest
import requests

from veranode.errors import ValidatorUnavailable
from veranode.vera_runtime.validator import (
    HttpRumorValidator,
    LocalRumorValidator,
    make_validator,
)


class _Resp:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def json(self):
        return self.payload


class _Session:
    def __init__(self, resp=None, exc=None):
        self.resp = resp
        self.exc = exc
        self.sent = []

    def post(self, url, json=None, timeout=None):
        self.sent.append((url, json, timeout))
        if self.exc:
            raise self.exc
        return self.resp


def test_http_validator_maps_camel_verdict():
    sess = _Session(_Resp({"isValid": True, "isRumor": True, "reason": "claim", "suggestedArea": "NBS"}))
    v = HttpRumorValidator("http://validator/validate", timeout_sec=3, session=sess)
    res = v.validate("NBS fees go up next term")
    assert res.is_valid and res.is_rumor and res.suggested_area == "NBS"
    assert sess.sent == [("http://validator/validate", {"content": "NBS fees go up next term"}, 3.0)]


def test_http_validator_drops_unknown_area():
    sess = _Session(_Resp({"isValid": True, "isRumor": True, "suggestedArea": "Atlantis"}))
    assert HttpRumorValidator("http://v", session=sess).validate("x" * 20).suggested_area is None


@pytest.mark.parametrize(
    "sess",
    [
        _Session(exc=requests.ConnectionError("refused")),
        _Session(_Resp({}, status=502)),
        _Session(_Resp(["not", "a", "dict"])),
    ],
)
def test_http_validator_unavailable(sess):
    with pytest.raises(ValidatorUnavailable):
        HttpRumorValidator("http://v", session=sess).validate("something happened on campus")


def test_local_rules():
    v = LocalRumorValidator()
    assert not v.validate("too short").is_valid
    assert not v.validate("https://example.com/some/long/path").is_rumor
    assert not v.validate("hello everyone, how are you all").is_rumor
    res = v.validate("The SCME building is getting a new wing")
    assert res.is_valid and res.suggested_area == "SCME"


def test_make_validator():
    assert isinstance(make_validator({"validator": {"driver": "local"}}), LocalRumorValidator)
    assert isinstance(make_validator({"validator": {"driver": "http", "url": "http://v"}}), HttpRumorValidator)
    with pytest.raises(ValueError):
        make_validator({"validator": {"driver": "carrier-pigeon"}})
