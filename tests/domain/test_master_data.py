from fuel_reimbursement.domain.master_data import MasterDataDiff
from fuel_reimbursement.domain.models import CollaboratorRecord


def make_collaborator(collaborator_id: int, external_id: int, name: str, sector_code: int, group: str, active: bool = True):
    return CollaboratorRecord(
        collaborator_id=collaborator_id,
        external_id=external_id,
        sector_code=sector_code,
        name=name,
        group=group,
        active=active,
    )


REGISTRY = [
    make_collaborator(1, 101, "Ana", 10, "Vendedor"),
    make_collaborator(2, 102, "Bruno", 20, "Supervisor Regional"),
    make_collaborator(3, 103, "Caio", 30, "Promotor", active=False),
]


def test_unknown_group_of_new_row_goes_to_catch_all():
    rows = [{"ID_PULSUS": 500, "NOME": "Diana", "CODIGO_SETOR": 40, "GRUPO": "Supervisor"}]

    result = MasterDataDiff().diff(rows, REGISTRY)

    assert len(result.new) == 1
    item = result.new[0]
    assert item.is_new
    assert item.external_id == 500
    assert item.group == "Outros"
    assert result.changed == ()


def test_known_and_default_groups_are_kept():
    rows = [
        {"id_pulsus": 501, "nome": "Eva", "grupo": "supervisor regional"},
        {"id_pulsus": 502, "nome": "Fabio", "grupo": "Promotor"},
        {"id_pulsus": 503, "nome": "Gil", "grupo": None},
    ]

    result = MasterDataDiff().diff(rows, REGISTRY)

    assert [item.group for item in result.new] == ["supervisor regional", "Promotor", "Outros"]


def test_changed_compares_only_name_and_sector():
    rows = [
        {"id_pulsus": 101, "nome": "Ana Maria", "codigo_setor": 10, "grupo": "Promotor"},
        {"id_pulsus": 102, "nome": "Bruno", "codigo_setor": 21, "grupo": "Vendedor"},
        {"id_pulsus": 103, "nome": "Caio", "codigo_setor": 30},
    ]

    result = MasterDataDiff().diff(rows, REGISTRY)

    assert result.new == ()
    by_id = {item.external_id: item for item in result.changed}
    assert set(by_id) == {101, 102}
    assert [c.field for c in by_id[101].changes] == ["name"]
    assert by_id[101].group == "Vendedor"
    assert by_id[101].collaborator_id == 1
    assert [(c.field, c.old_value, c.new_value) for c in by_id[102].changes] == [("sector_code", 20, 21)]


def test_invalid_and_duplicate_rows_are_skipped():
    rows = [
        {"id_pulsus": None, "nome": "No Id"},
        {"id_pulsus": 600, "nome": ""},
        {"id_pulsus": 601, "nome": "Hugo"},
        {"id_pulsus": 601, "nome": "Hugo Again"},
    ]

    result = MasterDataDiff().diff(rows, REGISTRY)

    assert [item.name for item in result.new] == ["Hugo"]
    assert result.skipped == 3
    assert result.total_external == 4


def test_custom_catch_all_and_defaults():
    differ = MasterDataDiff(catch_all_group="Other", default_groups=("Driver",))
    rows = [{"id": 700, "name": "Ivo", "group": "driver"}, {"id": 701, "name": "Jon", "group": "Vendedor"}]

    result = differ.diff(rows, [])

    assert [item.group for item in result.new] == ["driver", "Other"]


def test_unknown_id_on_occupied_sector_and_group_is_a_conflict():
    rows = [
        {"id_pulsus": 901, "nome": "Ana Souza", "codigo_setor": 10, "grupo": "vendedor"},
        {"id_pulsus": 902, "nome": "Novo", "codigo_setor": 10, "grupo": "Vendedor"},
        {"id_pulsus": 903, "nome": "Caio", "codigo_setor": 30, "grupo": "Promotor"},
    ]

    result = MasterDataDiff().diff(rows, REGISTRY)

    assert [item.external_id for item in result.conflicts] == [901]
    conflict = result.conflicts[0]
    assert conflict.is_conflict
    assert conflict.collaborator_id == 1
    assert conflict.group == "Vendedor"
    assert [(c.field, c.old_value, c.new_value) for c in conflict.changes] == [("external_id", 101, 901)]
    # the holder is claimed once; inactive records never hold a sector
    assert [item.external_id for item in result.new] == [902, 903]
    assert result.has_changes()


def test_same_sector_with_other_group_or_unknown_sector_is_new():
    rows = [
        {"id_pulsus": 904, "nome": "Davi", "codigo_setor": 10, "grupo": "Promotor"},
        {"id_pulsus": 905, "nome": "Elis", "grupo": "Vendedor"},
    ]

    result = MasterDataDiff().diff(rows, REGISTRY)

    assert result.conflicts == ()
    assert [item.external_id for item in result.new] == [904, 905]
