"""
Ingestion driver

Runs the passes over decoded OSM elements:

  1. Scan relations: record member ways, relation tags and way lists
  2. Nodes: store coordinates, classify nodes with significant keys
  3. Ways: keep node lists of ways used by relations, classify every way
  4. Relations: assemble and classify the relations kept by the scan

Pass 1 must finish before anything else starts, since which ways to keep
depends on the complete relation index. Each pass fans blocks of elements
out to a thread pool; every worker thread owns its own rules object and
FeatureProcessor.
"""

import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, as_completed, wait
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from .config import ProcessingConfig, get_config, validate_config
from .errors import MissingReferenceError
from .models import OSMNode, OSMRelation, OSMWay
from .processing import FeatureProcessor, OutputSink, ReferenceLayerIndex, VectorLayerMetadata
from .processing.feature_processor import AREA_RELATION_TYPES
from .store import ObjectStore, relation_entry


class TilePipeline:
    """
    Two-pass OSM to tile-feature pipeline

    Usage:
        pipeline = TilePipeline(rules_factory=MyRules, sink=MemorySink())
        stats = pipeline.run(relation_blocks, node_blocks, way_blocks)
    """

    def __init__(
        self,
        rules_factory: Callable[[], Any],
        sink: OutputSink,
        store: Optional[ObjectStore] = None,
        config: Optional[ProcessingConfig] = None,
        reference_layers: Optional[ReferenceLayerIndex] = None
    ):
        self.config = config or get_config()
        validate_config(self.config)

        self.store = store or ObjectStore(config=self.config.store)
        self.rules_factory = rules_factory
        self.sink = sink
        self.reference_layers = reference_layers if reference_layers is not None else ReferenceLayerIndex()
        self.layer_metadata = VectorLayerMetadata()

        self._local = threading.local()
        self._processors: List[FeatureProcessor] = []
        self._processors_lock = threading.Lock()
        self._relations_scanned = False

    def _processor(self) -> FeatureProcessor:
        """This thread's processor, created (with its own rules object) on first use"""
        processor = getattr(self._local, "processor", None)
        if processor is None:
            rules = self.rules_factory()
            init = getattr(rules, "init_function", None)
            if init is not None:
                init()
            processor = FeatureProcessor(
                self.store,
                rules,
                sink=self.sink,
                config=self.config,
                reference_layers=self.reference_layers,
                layer_metadata=self.layer_metadata
            )
            self._local.processor = processor
            with self._processors_lock:
                self._processors.append(processor)
        return processor

    def _run_blocks(self, name: str, blocks: Iterable[Sequence[Any]], handle: Callable[[Sequence[Any]], int]) -> int:
        """
        Fan blocks out to the thread pool, pulling from `blocks` only as
        workers free up: at most 2 * threads blocks are in flight at once.
        """
        total = 0
        max_in_flight = 2 * self.config.threads
        pending = set()
        with ThreadPoolExecutor(max_workers=self.config.threads, thread_name_prefix=name) as executor:
            try:
                for block in blocks:
                    pending.add(executor.submit(handle, block))
                    if len(pending) >= max_in_flight:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            total += future.result()
                for future in as_completed(pending):
                    total += future.result()
            except MissingReferenceError as e:
                logger.error(f"{name}: missing {e.kind} {e.ref_id} with integrity enforced, aborting")
                for future in pending:
                    future.cancel()
                raise
        return total

    # ============================================================
    # PASS 1: Relation scan
    # ============================================================

    def _accept_relation(self, rules: Any, relation: OSMRelation) -> bool:
        scan = getattr(rules, "relation_scan_function", None)
        if scan is None:
            return relation.tags.get("type", "") in AREA_RELATION_TYPES
        return bool(scan(relation.id, relation.tags))

    def _scan_block(self, block: Sequence[OSMRelation]) -> int:
        rules = self._processor().rules
        accepted = []
        for relation in block:
            if not self._accept_relation(rules, relation):
                continue
            self.store.store_relation_tags(relation.id, relation.tags)
            for way_id in relation.member_ways():
                self.store.relation_contains_way(relation.id, way_id)
                self.store.mark_way_used(way_id)
            accepted.append(relation_entry(relation.id, list(relation.outer_ways), list(relation.inner_ways)))
        count = len(accepted)
        self.store.relations_insert(accepted)
        return count

    def scan_relations(self, blocks: Iterable[Sequence[OSMRelation]], estimated_node_count: int = 0) -> int:
        logger.info("Pass 1: Scanning relations...")
        self.store.ensure_used_ways_inited(estimated_node_count)
        accepted = self._run_blocks("scan", blocks, self._scan_block)
        self.store.relations_sort()
        self._relations_scanned = True
        logger.info(f"Relation scan kept {accepted} relations")
        return accepted

    def _require_scan(self, what: str):
        if not self._relations_scanned:
            raise RuntimeError(f"Relations must be scanned before processing {what}")

    # ============================================================
    # PASS 2: Nodes and ways
    # ============================================================

    def _node_block(self, block: Sequence[OSMNode]) -> int:
        self.store.nodes.insert((node.id, node.point) for node in block)
        processor = self._processor()
        significant = set(processor.get_significant_node_keys())
        produced = 0
        for node in block:
            if significant.isdisjoint(node.tags):
                continue
            if processor.on_node(node.id, node.point, node.tags):
                produced += 1
        return produced

    def process_nodes(self, blocks: Iterable[Sequence[OSMNode]]) -> int:
        self._require_scan("nodes")
        logger.info("Pass 2: Processing nodes...")
        produced = self._run_blocks("nodes", blocks, self._node_block)
        logger.info(f"Nodes: {len(self.store.nodes)} stored, {produced} produced output")
        return produced

    def _way_block(self, block: Sequence[OSMWay]) -> int:
        self.store.ways.insert(
            (way.id, way.node_ids) for way in block if self.store.way_is_used(way.id)
        )
        processor = self._processor()
        produced = 0
        for way in block:
            if processor.on_way(way.id, way.node_ids, way.tags):
                produced += 1
        return produced

    def process_ways(self, blocks: Iterable[Sequence[OSMWay]]) -> int:
        self._require_scan("ways")
        logger.info("Pass 2: Processing ways...")
        produced = self._run_blocks("ways", blocks, self._way_block)
        logger.info(f"Ways: {len(self.store.ways)} kept for relations, {produced} produced output")
        return produced

    # ============================================================
    # PASS 3: Relations
    # ============================================================

    def _relation_block(self, block) -> int:
        processor = self._processor()
        produced = 0
        for relation_id, way_lists in block:
            tags = self.store.get_relation_tags(relation_id)
            if processor.on_relation(relation_id, way_lists, tags):
                produced += 1
        return produced

    def process_relations(self, block_size: int = 1000) -> int:
        self._require_scan("relations")
        logger.info("Pass 3: Processing relations...")
        entries = list(self.store.relations)
        blocks = [entries[i:i + block_size] for i in range(0, len(entries), block_size)]
        produced = self._run_blocks("relations", blocks, self._relation_block)
        logger.info(f"Relations: {len(entries)} assembled, {produced} produced output")
        return produced

    # ============================================================
    # Full run
    # ============================================================

    def finish(self):
        """Run each rules object's exit_function, once per worker"""
        with self._processors_lock:
            processors = list(self._processors)
        for processor in processors:
            exit_function = getattr(processor.rules, "exit_function", None)
            if exit_function is not None:
                exit_function()

    def run(
        self,
        relation_blocks: Iterable[Sequence[OSMRelation]],
        node_blocks: Iterable[Sequence[OSMNode]],
        way_blocks: Iterable[Sequence[OSMWay]],
        estimated_node_count: int = 0
    ) -> Dict[str, int]:
        """
        Run every pass in order

        Returns:
            Dict with keys: 'relations_scanned', 'nodes', 'ways', 'relations'
            (counts of elements that produced output, plus relations kept by the scan)
        """
        self.reference_layers.build()
        stats = {
            "relations_scanned": self.scan_relations(relation_blocks, estimated_node_count),
            "nodes": self.process_nodes(node_blocks),
            "ways": self.process_ways(way_blocks),
            "relations": self.process_relations(),
        }
        self.finish()
        self.store.report_size()
        return stats
