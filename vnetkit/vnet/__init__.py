"""Virtual network parts: chunks, chunk queues, interfaces, UDP connections, a connection map and NAT."""

__all__ = ["chunk", "chunk_queue", "interface", "conn", "conn_map", "nat"]