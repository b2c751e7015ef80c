from abc import ABC, abstractmethod
from typing import Iterator

from pyspark.sql.types import StructType


class LakeflowConnect(ABC):
    """Base interface the genealogy connector implements.

    Each engine operation is surfaced as a table; the ingestion framework
    discovers tables, asks for their schema and metadata, then reads them.
    """

    def __init__(self, options: dict[str, str]) -> None:
        """
        Args:
            options: Connection-level parameters (historian URL, credentials,
                time floor, worker counts).
        """
        self.options = options

    @abstractmethod
    def list_tables(self) -> list[str]:
        """Names of every table the connector serves."""

    @abstractmethod
    def get_table_schema(
        self, table_name: str, table_options: dict[str, str]
    ) -> StructType:
        """
        Fetch the schema of a table.
        Args:
            table_name: The name of the table.
            table_options: Per-table options. Genealogy tables have fixed
                schemas, so these are ignored here.
        Returns:
            A StructType describing one output row.
        """

    @abstractmethod
    def read_table_metadata(
        self, table_name: str, table_options: dict[str, str]
    ) -> dict:
        """
        Fetch the metadata of a table.
        Returns:
            A dictionary with:
                - primary_keys: column names identifying one row.
                - ingestion_type: "snapshot" for every genealogy table, since
                    each read answers one request in full.
        """

    @abstractmethod
    def read_table(
        self, table_name: str, start_offset: dict, table_options: dict[str, str]
    ) -> tuple[Iterator[dict], dict]:
        """
        Read the records of a table and return an iterator of records and an offset.

        The framework calls this repeatedly, passing the previous end offset
        as start_offset, and stops once the returned offset equals
        start_offset. A snapshot read answers its request in the first call
        and returns a terminal offset; a read starting from that offset
        yields nothing.

        Args:
            table_name: The name of the table to read.
            start_offset: None on the first call, then the previous end offset.
            table_options: Per-table options; `request` carries the JSON
                genealogy request.
        Returns:
            A two-element tuple of (records, offset).
        """
