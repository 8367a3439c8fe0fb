"""Tests for options, mode parsing, logging and profiling helpers."""

import logging

import jax.numpy as jnp
import pytest

from tcadjax import (
    AssemblyOptions,
    ProfileConfig,
    TimeMode,
    WhatToLoad,
    get_float_dtype,
    get_precision_info,
    profile_section,
)
from tcadjax._logging import FlushingHandler, enable_performance_logging, logger, set_log_level
from tcadjax.config import REL_ERROR_FLOOR


class TestAssemblyOptions:
    """Test AssemblyOptions validation and parsing."""

    def test_defaults(self):
        opts = AssemblyOptions()
        assert opts.max_workers == 1
        assert opts.validate_contributions is True
        assert opts.rel_error_floor == REL_ERROR_FLOOR
        assert opts.profile is False

    def test_validation_on_init(self):
        with pytest.raises(ValueError, match="max_workers"):
            AssemblyOptions(max_workers=0)
        with pytest.raises(ValueError, match="rel_error_floor"):
            AssemblyOptions(rel_error_floor=0.0)

    def test_validation_on_assignment(self):
        opts = AssemblyOptions()
        with pytest.raises(ValueError):
            opts.max_workers = -2
        opts.max_workers = 3
        assert opts.max_workers == 3

    def test_set_converts_strings(self):
        opts = AssemblyOptions()
        opts.set("max_workers", "4")
        opts.set("rel_error_floor", "1e-6")
        opts.set("profile", "yes")
        opts.set("validate_contributions", "off")
        assert opts.max_workers == 4
        assert opts.rel_error_floor == pytest.approx(1e-6)
        assert opts.profile is True
        assert opts.validate_contributions is False

    def test_set_unknown(self):
        with pytest.raises(ValueError, match="Unknown option"):
            AssemblyOptions().set("threads", 2)

    def test_update_from_dict_skips_unknown(self, caplog):
        opts = AssemblyOptions()
        with caplog.at_level(logging.WARNING, logger="tcadjax"):
            opts.update_from_dict({"max_workers": "2", "solver": "klu"})
        assert opts.max_workers == 2
        assert "solver" in caplog.text

    def test_copy_is_independent(self):
        opts = AssemblyOptions(max_workers=2)
        clone = opts.copy()
        clone.max_workers = 5
        assert opts.max_workers == 2
        assert clone.to_dict()["max_workers"] == 5

    def test_rel_error_floor_reaches_regions(self, device_factory):
        device = device_factory(options=AssemblyOptions(rel_error_floor=1e-3))
        assert device.get_region("left").rel_error_floor == 1e-3


class TestPrecision:
    """Test the float precision configured on import."""

    def test_dtype_follows_x64_flag(self):
        info = get_precision_info()
        expected = jnp.float64 if info["x64_enabled"] else jnp.float32
        assert get_float_dtype() is expected


class TestModeParsing:
    """Test WhatToLoad and TimeMode parsing."""

    def test_what_to_load_aliases(self):
        assert WhatToLoad.from_string("matrix") is WhatToLoad.MATRIX_ONLY
        assert WhatToLoad.from_string("RESIDUAL") is WhatToLoad.RHS_ONLY
        assert WhatToLoad.from_string(" both ") is WhatToLoad.MATRIX_AND_RHS
        with pytest.raises(ValueError, match="Unknown load selector"):
            WhatToLoad.from_string("neither")

    def test_load_flags(self):
        assert WhatToLoad.MATRIX_ONLY.loads_matrix and not WhatToLoad.MATRIX_ONLY.loads_rhs
        assert WhatToLoad.RHS_ONLY.loads_rhs and not WhatToLoad.RHS_ONLY.loads_matrix
        assert WhatToLoad.MATRIX_AND_RHS.loads_matrix and WhatToLoad.MATRIX_AND_RHS.loads_rhs

    def test_time_mode_aliases(self):
        assert TimeMode.from_string("dc") is TimeMode.DC
        assert TimeMode.from_string("transient") is TimeMode.TIME
        with pytest.raises(ValueError, match="Unknown time mode"):
            TimeMode.from_string("ac")


class TestLoggingAndProfiling:
    """Test log output of assembly and profiled sections."""

    @pytest.fixture(autouse=True)
    def restore_level(self):
        level = logger.level
        yield
        set_log_level(level)

    def test_performance_logging_mode(self):
        enable_performance_logging()
        assert logger.level == logging.DEBUG
        assert [type(h) for h in logger.handlers] == [FlushingHandler]

    def test_renumbering_logged_at_info(self, device, caplog):
        with caplog.at_level(logging.INFO, logger="tcadjax"):
            device.set_base_equation_number(0)
        assert "Device 'diode': equations [0, 6) over 2 regions" in caplog.text

    def test_profiled_assembly_logs_timing(self, device_factory, caplog):
        device = device_factory(options=AssemblyOptions(profile=True))
        device.set_base_equation_number(0)
        with caplog.at_level(logging.DEBUG, logger="tcadjax"):
            device.assemble()
        assert "diode.region_assemble:" in caplog.text

    def test_profile_section_without_jax_trace(self, caplog):
        config = ProfileConfig(jax=False, timing=True)
        with caplog.at_level(logging.DEBUG, logger="tcadjax"):
            with profile_section("unit", config):
                pass
        assert "unit:" in caplog.text
        assert "JAX trace" not in caplog.text

    def test_profile_env_default(self, monkeypatch):
        monkeypatch.setenv("TCADJAX_PROFILE_JAX", "true")
        monkeypatch.setenv("TCADJAX_PROFILE_DIR", "/tmp/custom-traces")
        config = ProfileConfig()
        assert config.jax is True
        assert config.trace_dir == "/tmp/custom-traces"
