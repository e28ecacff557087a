from subtrack.config import Settings


def test_defaults():
    s = Settings(_env_file=None)
    assert s.default_currency == "NOK"
    assert s.default_alert_thresholds == [50, 75, 90, 100]
    assert s.detection_min_confidence == 0.6


def test_thresholds_from_comma_string():
    s = Settings(_env_file=None, default_alert_thresholds="90, 50,75")
    assert s.default_alert_thresholds == [50, 75, 90]


def test_single_threshold():
    assert Settings(_env_file=None, default_alert_thresholds=80).default_alert_thresholds == [80]
