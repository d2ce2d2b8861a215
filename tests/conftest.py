import copy

import pytest

SAMPLE_IPDATA = {
    "ip": "8.8.8.8",
    "is_eu": False,
    "city": "Mountain View",
    "region": "California",
    "region_code": "CA",
    "country_name": "United States",
    "country_code": "US",
    "continent_name": "North America",
    "continent_code": "NA",
    "latitude": 37.386,
    "longitude": -122.0838,
    "postal": "94035",
    "calling_code": "1",
    "flag": "https://ipdata.co/flags/us.png",
    "carrier": {"name": "Verizon", "mcc": "310", "mnc": "004"},
    "language": {"name": "English", "native": "English"},
    "currency": {
        "name": "US Dollar",
        "code": "USD",
        "symbol": "$",
        "native": "$",
        "plural": "US dollars",
    },
    "time_zone": {
        "name": "America/Los_Angeles",
        "abbr": "PST",
        "offset": "-0800",
        "is_dst": False,
        "current_time": "2026-01-01T00:00:00-08:00",
    },
    "threat": {
        "is_tor": False,
        "is_proxy": False,
        "is_anonymous": False,
        "is_known_attacker": False,
        "is_known_abuser": False,
        "is_threat": False,
        "is_bogon": False,
    },
    "asn": {
        "asn": "AS15169",
        "name": "Google LLC",
        "domain": "google.com",
        "route": "8.8.8.0/24",
        "type": "business",
    },
}


@pytest.fixture
def ipdata_payload() -> dict:
    return copy.deepcopy(SAMPLE_IPDATA)
