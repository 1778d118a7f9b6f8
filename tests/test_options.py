import pytest

from config import SCHEMA_DUMP_BATCH_SIZE
from models.connection_info import ConnectionInfo
from models.dump_options import DumpOptions, InsertFormat
from models.import_options import ErrorMode, ImportOptions


def test_dump_options_defaults():
    options = DumpOptions.from_dict({})
    assert options.insert_format == InsertFormat.COPY
    assert options.batch_size == SCHEMA_DUMP_BATCH_SIZE
    assert options.include_structure and options.include_data


def test_dump_options_round_trip_through_dict():
    options = DumpOptions.from_dict({"clean": True, "insert_format": "multi", "batch_size": "50"})
    assert options.insert_format == InsertFormat.MULTI
    assert options.batch_size == 50
    assert DumpOptions.from_dict(options.to_dict()) == options


@pytest.mark.parametrize("data", [
    {"data_only": True, "structure_only": True},
    {"batch_size": 0},
    {"insert_format": "xml"},
])
def test_dump_options_validation(data):
    with pytest.raises(ValueError):
        DumpOptions.from_dict(data)


def test_import_options_from_dict():
    options = ImportOptions.from_dict({"allow_drops": True, "error_mode": "continue"})
    assert options.allow_drops
    assert options.error_mode == ErrorMode.CONTINUE
    assert options.data and options.schema_create and options.defer_self

    with pytest.raises(ValueError):
        ImportOptions.from_dict({"error_mode": "retry"})


def test_connection_info_dsn_omits_unset_options():
    info = ConnectionInfo.from_dict({"host": "db", "port": "6543", "user": "u", "dbname": "d"})
    assert info.port == 6543
    assert info.display_name == "u@db:6543/d"
    assert "sslmode" not in info.dsn
    assert "connect_timeout" not in info.dsn

    secured = ConnectionInfo(sslmode="require", connect_timeout=5)
    assert secured.dsn["sslmode"] == "require"
    assert secured.dsn["connect_timeout"] == 5
