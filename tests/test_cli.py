import io
import json

from PIL import Image
from loguru import logger
import pytest

import main


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "logging": {"dir": str(tmp_path / "logs"), "level": "DEBUG"},
                "storage": {"path": str(tmp_path / "store.json")},
            }
        ),
        encoding="utf-8",
    )
    yield path
    logger.remove()


def _plain_jpeg():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buf, "JPEG")
    return buf.getvalue()


def test_cli_writes_error_report_for_images_without_gps(tmp_path, settings_file):
    photos = tmp_path / "photos" / "day1"
    photos.mkdir(parents=True)
    (photos / "DJI_0001.JPG").write_bytes(_plain_jpeg())
    (photos / "notes.txt").write_text("skip me", encoding="utf-8")
    out = tmp_path / "out"

    code = main.main(["My Site", str(tmp_path / "photos"), "--output", str(out), "--settings", str(settings_file)])

    assert code == 0
    report = (out / "error_report_My_Site.html").read_text(encoding="utf-8")
    assert "DJI_0001.JPG" in report
    assert "No GPS data found" in report
    assert not (out / "My_Site.kml").exists()
    frame = json.loads((out / "My_Site_frame.json").read_text(encoding="utf-8"))
    assert frame["markers"] == []


def test_cli_nothing_to_process_exits_nonzero(tmp_path, settings_file):
    (tmp_path / "readme.txt").write_text("x", encoding="utf-8")
    code = main.main(["Site", str(tmp_path / "readme.txt"), "--output", str(tmp_path), "--settings", str(settings_file)])
    assert code == 1


def test_cli_load_kml_rewrites_documents(tmp_path, settings_file):
    kml = tmp_path / "trip.kml"
    kml.write_text(
        "<kml><Document><name>Old Trip</name>"
        "<Placemark><name>a.jpg</name><Point><coordinates>10,20</coordinates></Point></Placemark>"
        "</Document></kml>",
        encoding="utf-8",
    )
    out = tmp_path / "out"
    code = main.main(["ignored", "--load", str(kml), "--output", str(out), "--settings", str(settings_file)])
    assert code == 0
    assert "<coordinates>10,20</coordinates>" in (out / "Old_Trip.kml").read_text(encoding="utf-8")
    frame = json.loads((out / "Old_Trip_frame.json").read_text(encoding="utf-8"))
    assert frame["markers"] == [{"lat": 20.0, "lon": 10.0, "color": "#00ff00"}]
