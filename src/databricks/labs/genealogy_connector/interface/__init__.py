from databricks.labs.genealogy_connector.interface.lakeflow_connect import LakeflowConnect

__all__ = ["LakeflowConnect"]
