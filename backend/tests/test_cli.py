"""
Flask CLI commands.
"""

from salonerp.models import Location


def test_system_init_seeds_default_locations(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0
    assert "Created 3 default locations" in first.output
    assert "skipping defaults" in second.output
    assert sorted(loc.kind for loc in db_session.query(Location).all()) == ["branch", "home_service", "online"]


def test_locations_dedupe_dry_run(app, db_session, location_a):
    db_session.add(Location(name="downtown salon", kind="branch", is_active=True))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["locations", "dedupe", "--dry-run"])

    assert result.exit_code == 0
    assert "Would merge 'Downtown Salon'" in result.output
    assert db_session.query(Location).count() == 2


def test_check_negative_exit_code(app, db_session, shampoo, location_a, set_stock):
    runner = app.test_cli_runner()

    clean = runner.invoke(args=["inventory", "check-negative"])
    set_stock(shampoo, location_a, -4)
    dirty = runner.invoke(args=["inventory", "check-negative"])

    assert clean.exit_code == 0
    assert dirty.exit_code == 1
    assert "stock=-4" in dirty.output
