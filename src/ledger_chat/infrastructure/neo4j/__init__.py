from .driver import create_neo4j_driver
from .records import Neo4jRecordSource

__all__ = ["Neo4jRecordSource", "create_neo4j_driver"]
