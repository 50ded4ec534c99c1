"""The reservations migration builds the schema the models expect."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

from mixlab.models.reservation import Reservation

ALEMBIC_DIR = Path(__file__).resolve().parents[2] / "alembic"


def _config(url: str) -> Config:
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    config.set_main_option("sqlalchemy.url", url)
    return config


def test_single_head_is_the_reservations_revision():
    script = ScriptDirectory.from_config(_config("sqlite://"))
    assert script.get_heads() == ["001_reservations"]


def test_upgrade_and_downgrade_on_sqlite(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    config = _config(url)
    engine = create_engine(url)
    try:
        command.upgrade(config, "head")

        inspector = inspect(engine)
        columns = {c["name"] for c in inspector.get_columns("reservations")}
        assert columns == {c.name for c in Reservation.__table__.columns}
        indexes = {i["name"] for i in inspector.get_indexes("reservations")}
        assert {"ix_reservations_booking_id", "ix_reservations_holding_by_date"} <= indexes

        command.downgrade(config, "base")
        assert "reservations" not in inspect(engine).get_table_names()
    finally:
        engine.dispose()


def test_postgres_upgrade_adds_the_exclusion_constraint(capsys):
    command.upgrade(_config("postgresql://mixlab@localhost/mixlab"), "head", sql=True)

    emitted = capsys.readouterr().out
    assert "ADD CONSTRAINT reservations_no_overlap" in emitted
    assert "EXCLUDE USING gist" in emitted
    assert "tsrange(starts_at, ends_at, '[)') WITH &&" in emitted
