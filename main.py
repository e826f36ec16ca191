import asyncio
import logging
import sys

from softdal import DatabaseError, DeleteOptions, Session
from softdal.config import get_settings
from softdal.utils.logging import configure_logging

logger = logging.getLogger(__name__)

SELECT_JOINED = """
    SELECT B.*, M.*
      FROM tmp_brands B
      JOIN tmp_models M ON M.brand_id = B.id
     ORDER BY B.brand_name, M.model_name
"""


async def run(db: Session) -> None:
    """Walk through every verb, both transaction outcomes and soft delete."""
    await db.exec(
        """CREATE TABLE IF NOT EXISTS tmp_brands(id INTEGER PRIMARY KEY AUTOINCREMENT,
                                                 brand_name VARCHAR(100) NOT NULL,
                                                 created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                                                 updated_at TIMESTAMP,
                                                 deleted_at TIMESTAMP)"""
    )
    await db.exec(
        """CREATE TABLE IF NOT EXISTS tmp_models(id INTEGER PRIMARY KEY AUTOINCREMENT,
                                                 brand_id INT NOT NULL,
                                                 model_name VARCHAR(100) NOT NULL,
                                                 created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                                                 updated_at TIMESTAMP,
                                                 deleted_at TIMESTAMP,
                                                 deleted_by_id INT,
                                                 deleted_by_name VARCHAR(100),
                                                 FOREIGN KEY (brand_id) REFERENCES tmp_brands (id) ON DELETE CASCADE)"""
    )

    brand = await db.insert("INSERT INTO tmp_brands(brand_name) VALUES ($1) RETURNING id", ["Ford"])
    logger.info("Brand inserted: %s", brand)
    model = await db.insert(
        "INSERT INTO tmp_models(brand_id, model_name) VALUES ($1, $2) RETURNING id", [brand.id, "Fiesta"]
    )
    logger.info("Model inserted: %s", model)

    tx = await db.start_transaction()
    try:
        fiat = await db.insert(
            "INSERT INTO tmp_brands(brand_name) VALUES ($1) RETURNING id", ["Fiat"], transaction=tx
        )
        for name in ("Fiat 500", "Panda", "Fastback"):
            await db.insert(
                "INSERT INTO tmp_models(brand_id, model_name) VALUES ($1, $2) RETURNING id",
                [fiat.id, name],
                transaction=tx,
            )
        await db.commit(tx)
    except DatabaseError:
        await db.rollback(tx)
        raise

    logger.info("Rows after commit: %s", await db.query_rows(SELECT_JOINED))
    logger.info("Ford: %s", await db.query_row("SELECT * FROM tmp_brands B WHERE B.id = $1", [1]))

    updated = await db.update(
        "UPDATE tmp_models SET model_name = $1 WHERE model_name = $2", ["Cronos", "Panda"]
    )
    logger.info("Update: %s", updated)
    deleted = await db.delete("DELETE FROM tmp_models WHERE id = $1", [2])
    logger.info("Delete: %s", deleted)
    logger.info("Rows after update/delete: %s", await db.query_rows(SELECT_JOINED))

    # the third insert has one placeholder for two columns and must fail
    tx = await db.start_transaction()
    try:
        ferrari = await db.insert(
            "INSERT INTO tmp_brands(brand_name) VALUES ($1) RETURNING id", ["Ferrari"], transaction=tx
        )
        await db.insert(
            "INSERT INTO tmp_models(brand_id, model_name) VALUES ($1, $2) RETURNING id",
            [ferrari.id, "296 GTB"],
            transaction=tx,
        )
        await db.insert(
            "INSERT INTO tmp_models(brand_id, model_name) VALUES ($1) RETURNING id",
            [ferrari.id, "F40"],
            transaction=tx,
        )
        await db.commit(tx)
    except DatabaseError as e:
        await db.rollback(tx)
        logger.info("Rolled back: %s", e)

    logger.info("Ferrari: %s", await db.query_row("SELECT * FROM tmp_brands B WHERE B.id = $1", [3]))

    # session-wide soft delete
    db.set_soft_delete(True)
    await db.delete("DELETE FROM tmp_brands WHERE id = $1", [1])

    # per-call soft delete
    db.set_soft_delete(False)
    await db.delete("DELETE FROM tmp_models WHERE id = $1", [3], options=DeleteOptions(soft_delete=True))

    logger.info("Live brands: %s", await db.query_rows("SELECT * FROM tmp_brands B WHERE B.deleted_at IS NULL"))
    logger.info("Live models: %s", await db.query_rows("SELECT * FROM tmp_models M WHERE M.deleted_at IS NULL"))

    await db.delete(
        "DELETE FROM tmp_models WHERE id = $1",
        [4],
        options=DeleteOptions(soft_delete=True, user_id=1, user_name="John Doe"),
    )
    logger.info(
        "Soft deleted models: %s",
        await db.query_rows("SELECT * FROM tmp_models M WHERE M.deleted_at IS NOT NULL"),
    )


async def main() -> int:
    """Run the demo against the configured database; returns the exit status."""
    settings = get_settings()
    configure_logging(settings.log_level_value)

    db = Session.from_settings(settings.db)
    try:
        await db.connect()
    except DatabaseError as e:
        logger.error("Cannot connect to %s: %s", db.path, e)
        return 1

    status = 0
    try:
        await run(db)
    except DatabaseError as e:
        logger.error("Demo failed: %s", e)
        status = 1
    finally:
        try:
            await db.exec("DROP TABLE IF EXISTS tmp_models")
            await db.exec("DROP TABLE IF EXISTS tmp_brands")
        finally:
            await db.close()
    return status


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Demo stopped.")
        exit_code = 130
    sys.exit(exit_code)
