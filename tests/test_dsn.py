import pytest

from sentryrelay.dsn import DSN, InvalidDSNError, parse_dsn


def test_parse_saas_style_dsn():
    dsn = parse_dsn("https://public@o123.ingest.example.com/42")
    assert dsn.raw == "https://public@o123.ingest.example.com/42"
    assert dsn.scheme == "https"
    assert dsn.public_key == "public"
    assert dsn.host == "o123.ingest.example.com"
    assert dsn.port == 443
    assert dsn.path == "/"
    assert dsn.project_id == "42"
    assert dsn.org_id == 123
    assert dsn.envelope_url == "https://o123.ingest.example.com/api/42/envelope/"
    assert dsn.csp_url == "https://o123.ingest.example.com/api/42/security/?sentry_key=public"


def test_parse_self_hosted_dsn_with_port_and_path():
    dsn = parse_dsn("http://public@localhost:9000/sentry/7")
    assert dsn.port == 9000
    assert dsn.path == "/sentry"
    assert dsn.project_id == "7"
    assert dsn.org_id is None
    assert dsn.base_endpoint_url() == "http://localhost:9000/sentry/api/7"
    assert dsn.envelope_url == dsn.base_endpoint_url() + "/envelope/"
    assert dsn.csp_url == dsn.base_endpoint_url() + "/security/?sentry_key=public"


def test_default_ports_are_left_out_of_urls():
    https = parse_dsn("https://public@example.com:443/1")
    http = parse_dsn("http://public@example.com:80/1")
    assert https.base_endpoint_url() == "https://example.com/api/1"
    assert http.base_endpoint_url() == "http://example.com/api/1"


def test_non_default_port_for_scheme_is_kept():
    dsn = parse_dsn("https://public@example.com:80/1")
    assert dsn.port == 80
    assert dsn.base_endpoint_url().startswith("https://example.com:80/")


def test_trailing_slash_keeps_path_suffix():
    dsn = parse_dsn("https://public@example.com/prefix/5/")
    assert dsn.project_id == "5"
    assert dsn.path == "/prefix/"
    assert dsn.base_endpoint_url() == "https://example.com/prefix/api/5"


def test_methods_match_computed_fields():
    dsn = parse_dsn("https://public@example.com/a/b/9")
    assert dsn.envelope_url == dsn.envelope_endpoint_url()
    assert dsn.csp_url == dsn.csp_report_endpoint_url()
    assert dsn.path == "/a/b"


@pytest.mark.parametrize(
    "dsn_str",
    [
        "https://example.com/1",
        "https://public@example.com",
        "public@example.com/1",
        "https://public@/1",
    ],
)
def test_missing_components_raise(dsn_str):
    with pytest.raises(InvalidDSNError, match="must contain a scheme, a host, a user and a path"):
        parse_dsn(dsn_str)


def test_empty_dsn_raises():
    with pytest.raises(InvalidDSNError, match="DSN is empty"):
        parse_dsn("")


def test_unsupported_scheme_raises():
    with pytest.raises(InvalidDSNError, match='must be either "http" or "https"'):
        parse_dsn("ftp://public@example.com/1")


def test_missing_project_id_raises():
    with pytest.raises(InvalidDSNError, match="must contain a project ID"):
        parse_dsn("https://public@example.com/")


def test_invalid_port_raises():
    with pytest.raises(InvalidDSNError, match="is invalid"):
        parse_dsn("https://public@example.com:abc/1")


def test_validate_accepts_parsed_dsn():
    dsn = parse_dsn("https://public@example.com/1")
    dsn.validate()
    assert dsn.public_key == "public"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"public_key": ""}, "public key"),
        ({"project_id": ""}, "project ID"),
        ({"host": ""}, "host"),
        ({"scheme": "ftp"}, "scheme"),
    ],
)
def test_validate_rejects_incomplete_dsn(overrides, message):
    fields = {
        "raw": "",
        "scheme": "https",
        "public_key": "public",
        "host": "example.com",
        "port": 443,
        "path": "/",
        "project_id": "1",
    }
    fields.update(overrides)
    with pytest.raises(InvalidDSNError, match=message):
        DSN(**fields).validate()