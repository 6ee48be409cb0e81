# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path
import pytest

from crm_recon.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _fresh_logging():
    # the app logger binds sys.stdout at setup; capsys swaps it per test
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def mock_mode(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


@pytest.fixture()
def sample_snapshot_yaml() -> str:
    return """owners:
  - {id: u1, display_name: Ana Perez}
  - {id: u2, display_name: Bruno Diaz}
clients:
  - id: c1
    display_name: Acme Industrial Argentina SA
    legal_name: Acme Industrial Argentina Sociedad Anonima
    tax_id: 30-71234567-8
invoices:
  - {id: i1, invoice_number: "0001-00008313", owner_id: u1, date: 2024-03-01, amount: 1500.00}
"""


@pytest.fixture()
def write_snapshot(temp_workdir: Path, sample_snapshot_yaml: str) -> Path:
    snap = temp_workdir / "data" / "snapshot.yml"
    snap.write_text(sample_snapshot_yaml, encoding="utf-8")
    return snap


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
tables:
  clients: clients
  invoices: invoices
  owners: users
invoice_columns:
  number: invoice_number
  owner: owner_id
  date: date
  amount: amount
client_mapping:
  Asesor: owner
reader:
  header_row: 0
snapshot_path: ./data/snapshot.yml
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def clients_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "clients.csv"
    f.write_text(
        "Nombre,CUIT,Asesor,Email\n"
        "Globex SRL,30-70000001-1,Ana Perez,ventas@globex.example\n"
        "Acme Industrial Argentina,30-70000002-2,Bruno Diaz,\n"
        "Initech,30-71234567-8,Ana Perez,\n"
        "Umbrella,30-70000004-4,Nobody,\n",
        encoding="utf-8",
    )
    return f


@pytest.fixture()
def invoices_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "invoices.csv"
    f.write_text(
        "invoice_number,owner_id,date,amount\n"
        "0001-00008313,u1,2024-03-01,1500.00\n"
        "8313,u2,2024-03-05,200\n"
        "FAC-0002-00000077,u1,2024-03-07,99.90\n"
        "0002-00000077,u1,2024-03-07,99.90\n"
        "S/N,u1,2024-03-08,10\n",
        encoding="utf-8",
    )
    return f
