"""Connection pool lifecycle and transaction semantics."""

import pytest
from sqlalchemy import func, select

from app.db_pool import ConnectionPool, PoolClosedError, engine_options_from_config
from app.extensions import db
from app.models import Product


@pytest.fixture()
def owned_pool(tmp_path):
    pool = ConnectionPool().init(f"sqlite:///{tmp_path / 'pool.sqlite3'}")
    db.metadata.create_all(pool.engine)
    yield pool
    pool.close()


def _product_count(pool):
    with pool.session() as s:
        return s.execute(select(func.count(Product.id))).scalar_one()


def test_init_requires_uri_or_engine():
    with pytest.raises(ValueError):
        ConnectionPool().init()


def test_init_twice_is_rejected(owned_pool):
    with pytest.raises(RuntimeError):
        owned_pool.init("sqlite://")


def test_unopened_pool_refuses_sessions():
    pool = ConnectionPool()

    assert not pool.is_open
    with pytest.raises(PoolClosedError):
        with pool.session():
            pass


def test_ping(owned_pool):
    assert owned_pool.ping() is True


def test_transaction_commits_on_success(owned_pool):
    with owned_pool.transaction() as s:
        s.add(Product(name="Nước suối", stock_quantity=3))

    assert _product_count(owned_pool) == 1


def test_transaction_rolls_back_on_error(owned_pool):
    with pytest.raises(RuntimeError):
        with owned_pool.transaction() as s:
            s.add(Product(name="Nước suối", stock_quantity=3))
            s.flush()
            raise RuntimeError("boom")

    assert _product_count(owned_pool) == 0


def test_connections_are_returned_to_the_pool(owned_pool):
    for _ in range(3):
        with pytest.raises(RuntimeError):
            with owned_pool.transaction() as s:
                s.execute(select(Product.id))
                raise RuntimeError("boom")
        with owned_pool.session() as s:
            s.execute(select(Product.id))

    assert owned_pool.engine.pool.checkedout() == 0


def test_close_is_idempotent_and_final(tmp_path):
    pool = ConnectionPool().init(f"sqlite:///{tmp_path / 'close.sqlite3'}")

    pool.close()
    pool.close()

    assert not pool.is_open
    with pytest.raises(PoolClosedError):
        pool.engine


def test_adopted_engine_survives_close(app):
    with app.app_context():
        engine = db.engine
        pool = ConnectionPool().init(engine=engine)
        pool.close()

        with engine.connect() as conn:
            assert conn.exec_driver_sql("SELECT 1").scalar() == 1


def test_engine_options_only_size_non_sqlite_pools():
    sqlite_opts = engine_options_from_config({"SQLALCHEMY_DATABASE_URI": "sqlite:///x.db"})
    mysql_opts = engine_options_from_config({
        "SQLALCHEMY_DATABASE_URI": "mysql+pymysql://u:p@localhost/pos",
        "DB_POOL_SIZE": 7,
    })

    assert sqlite_opts == {"pool_pre_ping": True}
    assert mysql_opts["pool_size"] == 7
    assert mysql_opts["pool_pre_ping"] is True
