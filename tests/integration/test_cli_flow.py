"""End-to-end CLI flows with both transports served by httpx.MockTransport."""

import json
import logging

import httpx
import pytest

from shiplink import main
from shiplink.infrastructure.config.settings import reset_configuration

ARAMEX_ENV = {
    "ARAMEX_USERNAME": "testuser@example.com",
    "ARAMEX_PASSWORD": "secret-password",
    "ARAMEX_ACCOUNT_NUMBER": "20016",
    "ARAMEX_ACCOUNT_PIN": "331421",
    "ARAMEX_ACCOUNT_ENTITY": "AMM",
    "ARAMEX_ACCOUNT_COUNTRY_CODE": "JO",
    "ARAMEX_SANDBOX": "false",
    "LOGGING_LEVEL": "CRITICAL",
    "COLUMNS": "200",
}

SOAP_TRACKING = b"""<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">
  <s:Body>
    <ShipmentTrackingResponse xmlns="http://ws.aramex.net/ShippingAPI/v1/">
      <Notifications/>
      <HasErrors>false</HasErrors>
      <TrackingResults xmlns:a="http://schemas.microsoft.com/2003/10/Serialization/Arrays">
        <a:KeyValueOfstringArrayOfTrackingResultmFAkxlpY>
          <a:Key>123</a:Key>
          <a:Value>
            <TrackingResult>
              <UpdateCode>SH005</UpdateCode>
              <UpdateDescription>Delivered</UpdateDescription>
              <UpdateDateTime>2024-01-02T10:00:00</UpdateDateTime>
              <UpdateLocation>Amman</UpdateLocation>
            </TrackingResult>
          </a:Value>
        </a:KeyValueOfstringArrayOfTrackingResultmFAkxlpY>
      </TrackingResults>
    </ShipmentTrackingResponse>
  </s:Body>
</s:Envelope>"""

HTTP_TRACKING = {
    "hasErrors": False,
    "shipments": [{
        "trackingNumber": "123",
        "statusDescription": "In Transit",
        "currentLocation": "Dubai",
        "shipmentEvents": [
            {"eventDate": "2024-01-01T08:00:00Z", "eventCode": "IT", "location": "Dubai",
             "eventDescription": "In transit"},
        ],
    }],
}

HTTP_RATES = {
    "hasErrors": False,
    "rateDetails": [{
        "serviceCode": "PDX",
        "serviceName": "Priority Document Express",
        "productType": "PDX",
        "productGroup": "EXP",
        "rate": 88.0,
        "currencyCode": "AED",
    }],
}


class ProviderStub:
    """Answers SOAP requests with XML and JSON requests with JSON, recording every call."""

    def __init__(self, soap_status=200):
        self.soap_status = soap_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if "SOAPAction" in request.headers:
            if self.soap_status != 200:
                return httpx.Response(self.soap_status, content=b"")
            return httpx.Response(200, content=SOAP_TRACKING)
        if request.url.path.endswith("/TrackShipments"):
            return httpx.Response(200, json=HTTP_TRACKING)
        if request.url.path.endswith("/CalculateRate"):
            return httpx.Response(200, json=HTTP_RATES)
        return httpx.Response(404)

    @property
    def hosts(self):
        return {request.url.host for request in self.requests}


@pytest.fixture(autouse=True)
def isolated_app(monkeypatch):
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    for name, value in ARAMEX_ENV.items():
        monkeypatch.setenv(name, value)
    reset_configuration()
    main.reset_dependencies()
    yield
    main.reset_dependencies()
    reset_configuration()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def provider(monkeypatch):
    stub = ProviderStub()
    real_create = main.create_dependencies
    monkeypatch.setattr(main, "create_dependencies", lambda: real_create(http_transport=httpx.MockTransport(stub)))
    return stub


def test_track_uses_soap(runner, provider):
    result = runner.invoke(main.app, ["track", "123"])

    assert result.exit_code == 0, result.output
    assert "Delivered" in result.output
    assert all("SOAPAction" in request.headers for request in provider.requests)


def test_track_http_flag_skips_soap(runner, provider):
    result = runner.invoke(main.app, ["track", "123", "--http", "--last-update-only"])

    assert result.exit_code == 0, result.output
    assert "In Transit" in result.output
    [request] = provider.requests
    assert "SOAPAction" not in request.headers
    assert json.loads(request.content)["GetLastTrackingUpdateOnly"] is True


def test_track_falls_back_when_soap_fails(runner, provider):
    provider.soap_status = 500

    result = runner.invoke(main.app, ["track", "123"])

    assert result.exit_code == 0, result.output
    assert "In Transit" in result.output
    assert len(provider.requests) == 2


def test_track_batch_reports_missing_package(runner, provider):
    result = runner.invoke(main.app, ["track", "123", "999"])

    assert result.exit_code == 1
    assert "Delivered" in result.output
    assert "Not Found" in result.output
    assert len(provider.requests) == 1


def test_status(runner, provider):
    result = runner.invoke(main.app, ["status", "123"])

    assert result.exit_code == 0, result.output
    assert "Delivered" in result.output
    assert "Amman" in result.output


def test_rates_default_package(runner, provider):
    result = runner.invoke(main.app, ["rates", "Dubai,AE", "Amman,JO"])

    assert result.exit_code == 0, result.output
    assert "Priority Document Express" in result.output
    body = json.loads(provider.requests[0].content)
    assert body["ShipmentDetails"]["Dimensions"]["Length"] == 20
    assert body["ClientInfo"]["AccountEntity"] == "AMM"


def test_rates_rejects_invalid_package(runner, provider):
    result = runner.invoke(main.app, ["rates", "Dubai,AE", "Amman,JO", "--weight=-2"])

    assert result.exit_code == 1
    assert "weight must be a positive number" in result.output
    assert provider.requests == []


def test_sandbox_flag_selects_sandbox_hosts(runner, provider):
    result = runner.invoke(main.app, ["--sandbox", "track", "123"])

    assert result.exit_code == 0, result.output
    assert provider.hosts == {"ws.dev.aramex.net"}


def test_production_hosts_by_default(runner, provider):
    runner.invoke(main.app, ["track", "123"])

    assert provider.hosts == {"ws.aramex.net"}


def test_health(runner, provider):
    result = runner.invoke(main.app, ["health"])

    assert result.exit_code == 0, result.output
    assert "healthy" in result.output
    assert provider.requests == []


def test_stats(runner, provider):
    result = runner.invoke(main.app, ["stats"])

    assert result.exit_code == 0, result.output
    assert "System Statistics" in result.output


def test_missing_credentials_exit_with_error(runner, provider, monkeypatch):
    monkeypatch.delenv("ARAMEX_PASSWORD")

    result = runner.invoke(main.app, ["track", "123"])

    assert result.exit_code == 1
    assert "Application Initialization Failed" in result.output
    assert "password should not be empty" in result.output
    assert provider.requests == []
