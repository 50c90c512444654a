import logging

import pytest

import matrix_config
from matrices import Matrix
from matrix_config import EngineConfig, config_from_mapping, get_config, load_config, set_config
from matrix_logging import setup_logging


@pytest.fixture(autouse=True)
def restore_config():
    previous = get_config()
    yield
    set_config(previous)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.rank_tolerance == 1e-10
        assert config.cell_width == 17
        assert config.max_name_length == 14

    def test_validation(self):
        with pytest.raises(ValueError, match="rank_tolerance"):
            EngineConfig(rank_tolerance=0)
        with pytest.raises(ValueError, match="real_precision"):
            EngineConfig(real_precision=12)

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="colour"):
            config_from_mapping({"colour": "blue"})

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("rank_tolerance: 1.0e-12\nlog_level: DEBUG\n")
        config = load_config(path)
        assert config.rank_tolerance == 1e-12
        assert config.log_level == "DEBUG"
        assert config.cell_width == 17

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("")
        assert load_config(path) == EngineConfig()

    def test_yaml_must_be_a_mapping(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "engine.yaml"
        path.write_text("sparse_initial_capacity: 5\n")
        monkeypatch.setenv(matrix_config.CONFIG_ENV_VAR, str(path))
        monkeypatch.setattr(matrix_config, "_current_config", None)
        assert get_config().sparse_initial_capacity == 5


class TestSetConfig:
    def test_overrides_return_previous(self):
        previous = set_config(real_precision=4)
        assert get_config().real_precision == 4
        assert previous.real_precision == 9
        set_config(previous)
        assert get_config() is previous

    def test_rendering_follows_config(self):
        set_config(real_precision=3)
        assert str(Matrix.from_scalar(3.14159)) == "3.14".ljust(17) + "\n\n"

    def test_sparse_capacity_follows_config(self):
        set_config(sparse_initial_capacity=4)
        assert Matrix.sparse(3, 3).storage.capacity == 4


class TestLogging:
    def test_setup_logging(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "engine.log"
        handlers = setup_logging("DEBUG", str(log_file))
        assert restore_root_logger.level == logging.DEBUG
        assert len(handlers) == 2
        assert all(handler in restore_root_logger.handlers for handler in handlers)
        logging.getLogger("matrix_division").debug("hello")
        assert "DEBUG    matrix_division | hello" in log_file.read_text()

    def test_repeated_setup_replaces_own_handlers(self, restore_root_logger, tmp_path):
        foreign = logging.NullHandler()
        restore_root_logger.addHandler(foreign)
        first = setup_logging("INFO", str(tmp_path / "engine.log"))
        second = setup_logging("INFO")
        assert foreign in restore_root_logger.handlers
        assert not any(handler in restore_root_logger.handlers for handler in first)
        assert second[0] in restore_root_logger.handlers

    def test_setup_from_config(self, restore_root_logger):
        set_config(log_level="ERROR")
        matrix_config.setup_logging_from_config()
        assert restore_root_logger.level == logging.ERROR
