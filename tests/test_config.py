import os

import pytest

import nekocurl
from nekocurl._config import build_useragent, get_default_driver


def test_timeout_defaults():
    timeout = nekocurl.Timeout()
    assert timeout.as_dict() == {"connect": 5.0, "read": 30.0, "write": 30.0, "total": None}


def test_timeout_from_single_value():
    timeout = nekocurl.Timeout(10.0, total=60.0)
    assert timeout.as_dict() == {"connect": 10.0, "read": 10.0, "write": 10.0, "total": 60.0}
    assert repr(nekocurl.Timeout(5.0)) == "Timeout(timeout=5.0)"


def test_timeout_from_tuple():
    timeout = nekocurl.Timeout((1.0, 2.0, 3.0))
    assert timeout.as_dict() == {"connect": 1.0, "read": 2.0, "write": 3.0, "total": None}


def test_timeout_from_timeout():
    timeout = nekocurl.Timeout(nekocurl.Timeout(5.0, read=1.0))
    assert timeout == nekocurl.Timeout(5.0, read=1.0)


def test_timeout_instance_cannot_be_combined_with_keywords():
    with pytest.raises(TypeError):
        nekocurl.Timeout(nekocurl.Timeout(5.0), read=1.0)
    with pytest.raises(TypeError):
        nekocurl.Timeout(nekocurl.Timeout(5.0), total=None)


def test_driver_options_defaults():
    options = nekocurl.DriverOptions()
    assert options.follow_redirects is True
    assert options.max_redirects == 20
    assert options.force_accept_encoding is True
    assert options.preserve_query_on_relative_redirect is False
    assert options.timeout == nekocurl.DEFAULT_TIMEOUT_CONFIG


def test_driver_options_coerce_timeout():
    assert nekocurl.DriverOptions(timeout=2.0).timeout == nekocurl.Timeout(2.0)


def test_driver_options_reject_negative_max_redirects():
    with pytest.raises(ValueError):
        nekocurl.DriverOptions(max_redirects=-1)


def test_driver_options_from_mapping():
    options = nekocurl.DriverOptions.from_mapping(
        {"followRedirects": False, "max_redirects": 3, "preserveQueryOnRelativeRedirect": True}
    )
    assert options == nekocurl.DriverOptions(
        follow_redirects=False, max_redirects=3, preserve_query_on_relative_redirect=True
    )
    assert nekocurl.DriverOptions.from_mapping(None) == nekocurl.DriverOptions()


def test_default_driver_falls_back_to_socket_driver():
    assert get_default_driver(["httpx", "nekocurl"]) == "nekocurl"
    os.environ["NEKOCURL_DEFAULT_DRIVER"] = "httpx"
    assert get_default_driver(["httpx", "nekocurl"]) == "httpx"


def test_build_useragent():
    assert build_useragent("httpx") == (
        f"Nekocurl v{nekocurl.__version__} httpx "
        "(https://github.com/CharlotteDunois/node-nekocurl)"
    )
