from pathlib import Path

import pytest

from facility_geo import main as app_main
from facility_geo.errors import ConfigurationError
from facility_geo.settings import build_settings, load_settings


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.toml", environ={})
    assert settings.report.radius_miles == 3.0
    assert (settings.report.zip_min, settings.report.zip_max) == (11200, 11300)
    assert settings.geocoder.provider == "mapbox"
    assert settings.geocoder.api_key is None


def test_toml_and_environment_overrides(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text(
        '[store]\nuri = "mongodb://db:27017"\ncollection = "clinics"\n'
        '[report]\nradius_miles = 5.0\n',
        encoding="utf-8",
    )
    settings = load_settings(
        path,
        environ={"FACILITY_GEO_DATABASE": "cms", "MAPBOX_ACCESS_TOKEN": "pk.test"},
    )
    assert settings.store.uri == "mongodb://db:27017"
    assert settings.store.collection == "clinics"
    assert settings.store.database == "cms"
    assert settings.geocoder.api_key == "pk.test"
    assert settings.report.radius_miles == 5.0


def test_invalid_values_are_configuration_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        build_settings({"report": {"zip_min": 500, "zip_max": 100}}, environ={})
    bad = tmp_path / "bad.toml"
    bad.write_text("[store\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(bad, environ={})


def test_cli_overrides_apply():
    settings = build_settings({}, environ={})
    args = app_main.build_arg_parser().parse_args(["update", "--radius", "5", "--concurrency", "8"])
    updated = app_main.apply_overrides(settings, args)
    assert args.mode == "update"
    assert updated.report.radius_miles == 5.0
    assert updated.enrich.concurrency == 8


def test_mode_defaults_to_report():
    args = app_main.build_arg_parser().parse_args([])
    assert args.mode == "report"
    assert args.config == Path("config/settings.toml")
