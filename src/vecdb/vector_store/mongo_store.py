"""
MongoDB Vector Store

Durable backend over a MongoDB collection. Each record is one document keyed
by its id. Large batches are split into bounded chunks written with a limited
number of concurrent workers, and transient server errors (throttling,
network blips, failovers) are retried with exponential backoff.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from pymongo import MongoClient, ReplaceOne, errors
from pymongo.collection import Collection

from ..exceptions import DuplicateIdError, NotFoundError
from .base import RecordPredicate, VectorStore, compile_predicate
from .retry import retry_with_backoff, retry_with_backoff_async
from .schema import VectorRecord

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000

# Server codes for throttling, failover and interrupted operations
TRANSIENT_ERROR_CODES = {
    6,      # HostUnreachable
    7,      # HostNotFound
    50,     # MaxTimeMSExpired
    89,     # NetworkTimeout
    91,     # ShutdownInProgress
    189,    # PrimarySteppedDown
    262,    # ExceededTimeLimit
    9001,   # SocketException
    10107,  # NotWritablePrimary
    11600,  # InterruptedAtShutdown
    11602,  # InterruptedDueToReplStateChange
    13435,  # NotPrimaryNoSecondaryOk
    13436,  # NotPrimaryOrSecondary
    16500,  # RequestRateTooLarge
}


def is_transient_error(error: BaseException) -> bool:
    """Whether a pymongo error is worth retrying."""
    if isinstance(error, (errors.ConnectionFailure, errors.ExecutionTimeout, errors.WTimeoutError)):
        return True
    if isinstance(error, errors.PyMongoError) and error.has_error_label("RetryableWriteError"):
        return True
    if isinstance(error, errors.OperationFailure) and not isinstance(error, errors.BulkWriteError):
        return error.code in TRANSIENT_ERROR_CODES
    return False


def _duplicate_ids(error: errors.BulkWriteError) -> List[str]:
    return [write_error["op"]["_id"] for write_error in error.details.get("writeErrors", [])
            if write_error.get("code") == DUPLICATE_KEY_CODE]


class MongoVectorStore(VectorStore):
    """
    MongoDB implementation of the vector store contract.

    Records live in ``collection_name``; index-level documents (configuration,
    quantizer state) live in ``index_metadata``. A pre-built collection can be
    injected, in which case no client is created.
    """

    backend_name = "mongo"

    def __init__(self,
                 dimensions: int,
                 connection_string: str = "mongodb://localhost:27017",
                 database_name: str = "vecdb",
                 collection_name: str = "vectors",
                 timeout_ms: int = 5000,
                 max_batch_size: int = 500,
                 max_retries: int = 5,
                 retry_base_delay: float = 0.1,
                 retry_max_delay: float = 5.0,
                 max_concurrency: int = 4,
                 collection: Optional[Collection] = None,
                 metadata_collection: Optional[Collection] = None,
                 sleep: Optional[Callable[[float], None]] = None):
        """
        Initialize MongoDB connection.

        Args:
            dimensions (int): Vector dimensionality
            connection_string (str): MongoDB connection string
            database_name (str): Database name
            collection_name (str): Collection holding vector records
            timeout_ms (int): Server selection timeout in milliseconds
            max_batch_size (int): Documents per bulk write
            max_retries (int): Attempts per operation before giving up
            retry_base_delay (float): First backoff delay in seconds
            retry_max_delay (float): Backoff ceiling in seconds
            max_concurrency (int): Concurrent chunk writers
            collection (Optional[Collection]): Pre-built records collection
            metadata_collection (Optional[Collection]): Pre-built index metadata collection
            sleep (Optional[Callable[[float], None]]): Backoff sleep function
        """
        super().__init__(dimensions)
        self.max_batch_size = max_batch_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.max_concurrency = max_concurrency
        self._sleep = sleep
        self.client = None
        self.retries = 0

        if collection is None:
            try:
                self.client = MongoClient(connection_string, serverSelectionTimeoutMS=timeout_ms)
                self.client.server_info()
            except errors.ServerSelectionTimeoutError:
                logger.error(f"Could not connect to MongoDB at {connection_string}")
                raise
            db = self.client[database_name]
            collection = db[collection_name]
            if metadata_collection is None:
                metadata_collection = db.index_metadata
            logger.info(f"Connected to MongoDB at {connection_string}")

        self.collection = collection
        self.index_metadata = metadata_collection
        self._create_indexes()

    def _create_indexes(self) -> None:
        try:
            self.collection.create_index("created_at")
        except errors.PyMongoError as e:
            logger.warning(f"Could not create some indexes: {e}")

    # Document conversion

    @staticmethod
    def _to_document(record: VectorRecord) -> Dict[str, Any]:
        document = record.to_dict()
        document["_id"] = record.id
        return document

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> VectorRecord:
        document = dict(document)
        document.pop("_id", None)
        return VectorRecord.from_dict(document)

    def _retry(self, func: Callable[[], Any], operation: str) -> Any:
        def counted():
            attempts["n"] += 1
            if attempts["n"] > 1:
                self.retries += 1
            return func()

        attempts = {"n": 0}
        return retry_with_backoff(counted, self.max_retries, self.retry_base_delay,
                                  self.retry_max_delay, is_transient_error,
                                  operation=operation, sleep=self._sleep)

    # Writes

    def put(self, record: VectorRecord, overwrite: bool = False) -> None:
        self.validate_record(record)
        self._write_chunk([record], overwrite)

    def put_many(self, records: List[VectorRecord], overwrite: bool = False) -> None:
        """
        Write records in chunks of ``max_batch_size``.

        Chunks are written by up to ``max_concurrency`` workers. On the create
        path duplicates raise DuplicateIdError listing every offending id;
        documents from the same batch that did not collide are still written.
        """
        for record in records:
            self.validate_record(record)
        chunks = self._chunks(records)
        if not chunks:
            return

        start_time = time.time()
        if len(chunks) == 1 or self.max_concurrency <= 1:
            for chunk in chunks:
                self._write_chunk(chunk, overwrite)
        else:
            with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
                futures = [executor.submit(self._write_chunk, chunk, overwrite) for chunk in chunks]
                self._raise_first([f.exception() for f in futures])

        logger.debug(f"Wrote {len(records)} records in {len(chunks)} chunks "
                     f"({time.time() - start_time:.3f}s)")

    async def put_many_async(self, records: List[VectorRecord], overwrite: bool = False) -> None:
        """Async bulk write with at most ``max_concurrency`` chunks in flight."""
        for record in records:
            self.validate_record(record)
        semaphore = asyncio.Semaphore(max(1, self.max_concurrency))

        async def write(chunk: List[VectorRecord]) -> None:
            async with semaphore:
                await asyncio.to_thread(self._write_chunk, chunk, overwrite)

        outcomes = await asyncio.gather(*(write(chunk) for chunk in self._chunks(records)),
                                        return_exceptions=True)
        self._raise_first(outcomes)

    @staticmethod
    def _raise_first(outcomes: Iterable[Any]) -> None:
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        duplicates = [f for f in failures if isinstance(f, DuplicateIdError)]
        if duplicates and len(duplicates) == len(failures):
            ids = [i for d in duplicates for i in d.details.get("ids", [d.record_id])]
            raise DuplicateIdError(ids[0], details={"ids": ids})
        if failures:
            raise failures[0]

    def _chunks(self, records: List[VectorRecord]) -> List[List[VectorRecord]]:
        size = max(1, self.max_batch_size)
        return [records[i:i + size] for i in range(0, len(records), size)]

    def _write_chunk(self, chunk: List[VectorRecord], overwrite: bool) -> None:
        documents = [self._to_document(record) for record in chunk]
        state = {"first": True}

        def upsert():
            self.collection.bulk_write(
                [ReplaceOne({"_id": doc["_id"]}, doc, upsert=True) for doc in documents],
                ordered=False)

        def insert():
            if not state["first"]:
                # an earlier attempt may have landed; replaying must be idempotent
                return self._reinsert(documents)
            state["first"] = False
            self.collection.insert_many(documents, ordered=False)

        try:
            self._retry(upsert if overwrite else insert, operation=f"write of {len(documents)} records")
        except errors.BulkWriteError as e:
            duplicates = _duplicate_ids(e)
            if duplicates:
                logger.error(f"Duplicate record ids in batch: {duplicates}")
                raise DuplicateIdError(duplicates[0], details={"ids": duplicates}) from e
            raise
        except errors.DuplicateKeyError as e:
            raise DuplicateIdError(chunk[0].id, details={"ids": [chunk[0].id]}) from e

    def _reinsert(self, documents: List[Dict[str, Any]]) -> None:
        existing = {doc["_id"]: doc for doc in self.collection.find(
            {"_id": {"$in": [d["_id"] for d in documents]}})}
        missing = [doc for doc in documents if doc["_id"] not in existing]
        conflicts = [doc["_id"] for doc in documents
                     if doc["_id"] in existing and existing[doc["_id"]].get("created_at") != doc["created_at"]]
        if missing:
            self.collection.insert_many(missing, ordered=False)
        if conflicts:
            raise DuplicateIdError(conflicts[0], details={"ids": conflicts})

    # Reads

    def get(self, record_id: str) -> VectorRecord:
        document = self._retry(lambda: self.collection.find_one({"_id": record_id}),
                               operation=f"read of {record_id}")
        if document is None:
            raise NotFoundError(record_id)
        return self._from_document(document)

    def get_many(self, record_ids: Iterable[str]) -> Dict[str, VectorRecord]:
        ids = list(record_ids)
        documents = self._retry(lambda: list(self.collection.find({"_id": {"$in": ids}})),
                                operation=f"read of {len(ids)} records")
        return {doc["_id"]: self._from_document(doc) for doc in documents}

    def scan(self, predicate: Optional[RecordPredicate] = None,
             page_size: Optional[int] = None) -> Iterator[VectorRecord]:
        """Iterate records in id order, one retried page at a time."""
        check = compile_predicate(predicate)
        page_size = page_size or self.max_batch_size
        last_id = None

        while True:
            query = {} if last_id is None else {"_id": {"$gt": last_id}}
            page = self._retry(
                lambda: list(self.collection.find(query, sort=[("_id", 1)], limit=page_size)),
                operation="scan")
            for document in page:
                record = self._from_document(document)
                if check is None or check(record):
                    yield record
            if len(page) < page_size:
                return
            last_id = page[-1]["_id"]

    def count(self) -> int:
        return self._retry(lambda: self.collection.count_documents({}), operation="count")

    def contains(self, record_id: str) -> bool:
        return self._retry(lambda: self.collection.count_documents({"_id": record_id}, limit=1),
                           operation=f"lookup of {record_id}") > 0

    # Deletes

    def delete(self, record_id: str) -> bool:
        result = self._retry(lambda: self.collection.delete_one({"_id": record_id}),
                             operation=f"delete of {record_id}")
        return result.deleted_count > 0

    def clear(self) -> None:
        result = self._retry(lambda: self.collection.delete_many({}), operation="clear")
        logger.info(f"Cleared {result.deleted_count} records from MongoDB")

    # Index metadata

    def put_index_metadata(self, name: str, document: Dict[str, Any]) -> None:
        self._retry(lambda: self.index_metadata.replace_one(
            {"_id": name}, {"_id": name, "document": document}, upsert=True),
            operation=f"write of index metadata {name}")

    def get_index_metadata(self, name: str) -> Optional[Dict[str, Any]]:
        stored = self._retry(lambda: self.index_metadata.find_one({"_id": name}),
                             operation=f"read of index metadata {name}")
        return stored["document"] if stored else None

    # Utility Methods

    def health_check(self) -> Dict[str, Any]:
        try:
            if self.client is not None:
                self.client.admin.command("ping")
            records = self.collection.count_documents({})
            return {"status": "healthy", "backend": self.backend_name, "records": records}
        except errors.PyMongoError as e:
            logger.warning(f"MongoDB health check failed: {e}")
            return {"status": "unhealthy", "backend": self.backend_name, "error": str(e)}

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats.update({
            "max_batch_size": self.max_batch_size,
            "max_concurrency": self.max_concurrency,
            "retries": self.retries,
        })
        return stats

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
