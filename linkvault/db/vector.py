import chromadb
from chromadb.config import Settings as ChromaSettings
import hashlib
import logging
from typing import Any

from linkvault.db.types import VectorMatch, VectorRecord, encode_document

logger = logging.getLogger(__name__)

COLLECTION_SPACE = "cosine"


def collection_name(namespace: str) -> str:
    """
    Chroma only allows short alphanumeric-ish collection names, and owner ids
    can be anything (emails, say), so namespaces are hashed into one.
    """
    digest = hashlib.sha1(namespace.encode("utf-8")).hexdigest()
    return f"links-{digest}"


class VectorIndex:
    """
    Nearest-neighbour lookup over link embeddings, backed by a persistent
    Chroma store with one collection per namespace (one per user). Distances
    are cosine distances, so 0.0 is identical and larger is further away.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._client = chromadb.PersistentClient(
            path=path, settings=ChromaSettings(anonymized_telemetry=False)
        )

    def _collection(self, namespace: str) -> Any:
        return self._client.get_or_create_collection(
            name=collection_name(namespace),
            metadata={"hnsw:space": COLLECTION_SPACE, "namespace": namespace},
        )

    def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        if not records:
            return 0
        self._collection(namespace).upsert(
            ids=[record.id for record in records],
            embeddings=[record.vector for record in records],
            documents=[record.text for record in records],
            metadatas=[
                {"document": encode_document(record.metadata)} for record in records
            ],
        )
        return len(records)

    def nearest(self, namespace: str, vector: list[float], k: int) -> list[VectorMatch]:
        collection = self._collection(namespace)
        available = collection.count()
        if available == 0:
            return []

        response = collection.query(
            query_embeddings=[vector],
            n_results=min(k, available),
            include=["documents", "metadatas", "distances"],
        )
        ids = response["ids"][0]
        documents = (response.get("documents") or [[]])[0] or []
        metadatas = (response.get("metadatas") or [[]])[0] or []
        distances = (response.get("distances") or [[]])[0] or []
        logger.debug("Chroma returned %d matches in %s", len(ids), namespace)

        matches = [
            VectorMatch(
                id=id,
                text=document or "",
                metadata=str((meta or {}).get("document", "")),
                distance=float(distance),
            )
            for id, document, meta, distance in zip(ids, documents, metadatas, distances)
        ]
        matches.sort(key=lambda m: m.distance)
        return matches

    def count(self, namespace: str) -> int:
        return self._collection(namespace).count()
