"""Manufacturing genealogy connector for Lakeflow."""


def __getattr__(name):
    """Lazy import to avoid importing pyspark-dependent modules at package init time."""
    if name == "GenealogyLakeflowConnect":
        # pylint: disable=import-outside-toplevel
        from databricks.labs.genealogy_connector.sources.genealogy.genealogy import (
            GenealogyLakeflowConnect,
        )

        return GenealogyLakeflowConnect
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["GenealogyLakeflowConnect"]  # pylint: disable=undefined-all-variable
