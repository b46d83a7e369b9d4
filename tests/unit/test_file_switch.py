import json

import pytest

from evpn_bridge.drivers.base import SwitchError, wait_for_ready
from evpn_bridge.drivers.file_switch import FileSwitchDriver
from evpn_p4.entries import PIPELINE, ActionName, Field, Table, exact, make_entry


def build_entry(vport=0x20, params=(10, 0)):
    return make_entry(
        Table.VPORT_INGRESS,
        {Field.VSI: exact(vport)},
        ActionName.SET_VLAN,
        params,
    )


def test_add_is_idempotent_and_overwrites(tmp_path):
    driver = FileSwitchDriver(tmp_path / "tables.json")

    driver.add_entry(build_entry())
    driver.add_entry(build_entry())
    assert len(driver) == 1

    driver.add_entry(build_entry(params=(20, 0)))
    (entry,) = driver.entries()
    assert entry.action.params == (20, 0)


def test_delete_of_absent_entry_is_harmless(tmp_path):
    driver = FileSwitchDriver(tmp_path / "tables.json")
    driver.add_entry(build_entry())

    driver.del_entry(build_entry().as_delete())
    driver.del_entry(build_entry().as_delete())

    assert len(driver) == 0


def test_adding_a_retraction_is_rejected():
    driver = FileSwitchDriver()

    with pytest.raises(SwitchError):
        driver.add_entry(build_entry().as_delete())


def test_table_state_is_written_to_file(tmp_path):
    path = tmp_path / "tables.json"
    driver = FileSwitchDriver(path)

    driver.add_entry(build_entry(0x21))
    driver.add_entry(build_entry(0x20))

    payload = json.loads(path.read_text())
    assert payload == driver.snapshot()
    assert payload["pipeline"] == PIPELINE
    rows = payload["tables"][Table.VPORT_INGRESS.value]
    assert len(rows) == 2
    assert rows[0]["action"]["params"] == [10, 0]
    assert "table" not in rows[0]
    assert driver.entries(Table.VPORT_INGRESS.value) == driver.entries()
    assert driver.entries("other") == []


def test_unwritable_path_raises(tmp_path):
    driver = FileSwitchDriver(tmp_path / "missing" / "tables.json")

    assert not driver.is_ready()
    with pytest.raises(SwitchError):
        driver.add_entry(build_entry())


def test_wait_for_ready_times_out(tmp_path):
    assert wait_for_ready(FileSwitchDriver(tmp_path / "tables.json"), timeout=0)
    assert not wait_for_ready(
        FileSwitchDriver(tmp_path / "missing" / "tables.json"),
        timeout=0.05,
        interval=0.01,
    )
