import tempfile
import unittest
from pathlib import Path

from titlebot_os.config import load_configs


class LoadConfigsTest(unittest.TestCase):
    def test_defaults_when_missing_file(self) -> None:
        device_cfg, capture_cfg, timing_cfg, service_cfg = load_configs(Path("nonexistent.yaml"), environ={})
        self.assertEqual(device_cfg.adb_path, "adb")
        self.assertIsNone(device_cfg.serial)
        self.assertEqual(capture_cfg.output_dir, Path("captures"))
        self.assertEqual(capture_cfg.verification.reference, "rok_goldenCrown.png")
        self.assertEqual(capture_cfg.verification.region, (158, 159, 42, 30))
        self.assertAlmostEqual(timing_cfg.same_context_settle_s, 2.0)
        self.assertAlmostEqual(timing_cfg.context_switch_settle_s, 5.0)
        self.assertEqual(timing_cfg.context_clear_presses, 10)
        self.assertEqual(timing_cfg.coordinate_clear_presses, 5)
        self.assertEqual(service_cfg.port, 5000)
        self.assertEqual(service_cfg.home_kingdom, "")

    def test_overrides_apply(self) -> None:
        yaml_content = """
device:
  adb_path: /opt/platform-tools/adb
  serial: emulator-5554
  command_timeout_s: 4
capture:
  output_dir: temp_captures
  save_captures: false
  validation:
    min_mean_luminance: 15
    min_luminance_stddev: 2
  retention:
    max_captures: 20
  verification:
    enabled: false
    region: [1, 2, 3, 4]
    tolerance: 0.25
timing:
  ui_delay_s: 0.5
  coordinate_clear_presses: 7
service:
  data_dir: state
  kingdoms:
    hk: 1234
    lk: 5678
  port: 8080
"""
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_path = Path(tmpdir) / "config.yaml"
            cfg_path.write_text(yaml_content, encoding="utf-8")

            device_cfg, capture_cfg, timing_cfg, service_cfg = load_configs(cfg_path, environ={})

        self.assertEqual(device_cfg.adb_path, "/opt/platform-tools/adb")
        self.assertEqual(device_cfg.serial, "emulator-5554")
        self.assertAlmostEqual(device_cfg.command_timeout_s, 4.0)
        self.assertEqual(capture_cfg.output_dir, Path("temp_captures"))
        self.assertFalse(capture_cfg.save_captures)
        self.assertAlmostEqual(capture_cfg.validation.min_mean_luminance, 15.0)
        self.assertEqual(capture_cfg.retention.max_captures, 20)
        self.assertFalse(capture_cfg.verification.enabled)
        self.assertEqual(capture_cfg.verification.region, (1, 2, 3, 4))
        self.assertAlmostEqual(capture_cfg.verification.tolerance, 0.25)
        self.assertAlmostEqual(timing_cfg.ui_delay_s, 0.5)
        self.assertEqual(timing_cfg.coordinate_clear_presses, 7)
        self.assertAlmostEqual(timing_cfg.focus_delay_s, 0.2)
        self.assertEqual(service_cfg.data_dir, Path("state"))
        self.assertEqual(service_cfg.logs_dir, Path("logs"))
        self.assertEqual(service_cfg.home_kingdom, "1234")
        self.assertEqual(service_cfg.kingdom_for_tier("lk"), "5678")
        self.assertEqual(service_cfg.port, 8080)

    def test_environment_overrides_yaml(self) -> None:
        yaml_content = """
device:
  serial: from-yaml
service:
  kingdoms:
    hk: 1111
"""
        environ = {
            "HOME_KD": "2222",
            "LOST_KD": "3333",
            "ADB_SERIAL": "from-env",
            "ADB_PATH": "/usr/bin/adb",
            "TITLEBOT_ADMIN_TOKEN": "secret",
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_path = Path(tmpdir) / "config.yaml"
            cfg_path.write_text(yaml_content, encoding="utf-8")

            device_cfg, _, _, service_cfg = load_configs(cfg_path, environ=environ)

        self.assertEqual(device_cfg.serial, "from-env")
        self.assertEqual(device_cfg.adb_path, "/usr/bin/adb")
        self.assertEqual(service_cfg.kingdom_for_tier("hk"), "2222")
        self.assertEqual(service_cfg.kingdom_for_tier("lk"), "3333")
        self.assertEqual(service_cfg.admin_token, "secret")


if __name__ == "__main__":
    unittest.main()
