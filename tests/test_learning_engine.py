import json
import tempfile
import unittest
from pathlib import Path

from name_normalizer.errors import InvalidInputError, PersistenceError
from name_normalizer.learning import LearningEngine, MappingEntry
from name_normalizer.storage import MemoryStore, SQLiteStore


class FailingStore(MemoryStore):
    def set(self, key: str, value: str) -> None:
        raise PersistenceError("disk full")


class TestMappings(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.engine = LearningEngine(self.store)

    def test_store_and_lookup_by_canonical_key(self) -> None:
        self.assertTrue(self.engine.store_mapping("Fodor, J.A.", "Jerry A. Fodor"))
        self.assertEqual(self.engine.get_mapping("fodor ja"), "Jerry A. Fodor")
        self.assertEqual(self.engine.get_mapping("  FODOR,   J.A. "), "Jerry A. Fodor")
        self.assertIsNone(self.engine.get_mapping("Fodor"))

    def test_mapping_is_persisted_as_json(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor", confidence=0.8)
        payload = json.loads(self.store.data["name_normalizer_mappings"])
        self.assertEqual(payload["j fodor"]["normalized"], "Jerry Fodor")
        self.assertEqual(payload["j fodor"]["usageCount"], 1)
        self.assertAlmostEqual(payload["j fodor"]["confidence"], 0.8)

    def test_upsert_keeps_highest_confidence(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor", confidence=0.9, context={"source": "a"})
        self.engine.store_mapping("J. Fodor", "Jerry A. Fodor", confidence=0.5, context={"batch": 2})
        details = self.engine.get_mapping_details("J. Fodor")
        self.assertEqual(details.normalized, "Jerry A. Fodor")
        self.assertAlmostEqual(details.confidence, 0.9)
        # two stores plus the lookup itself
        self.assertEqual(details.usage_count, 3)
        self.assertEqual(details.context, {"source": "a", "batch": 2})

    def test_confidence_is_clamped(self) -> None:
        self.engine.store_mapping("A", "B", confidence=3.0)
        self.assertEqual(self.engine.get_all_mappings()[0].confidence, 1.0)

    def test_rejects_empty_values(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.engine.store_mapping("", "Jerry Fodor")
        with self.assertRaises(InvalidInputError):
            self.engine.store_mapping("J. Fodor", "   ")
        with self.assertRaises(InvalidInputError):
            self.engine.store_mapping("...", "Jerry Fodor")
        self.assertEqual(self.engine.get_all_mappings(), [])

    def test_non_numeric_confidence_is_rejected_for_new_and_known_raw(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.engine.store_mapping("J. Fodor", "Jerry Fodor", confidence="high")
        self.assertEqual(self.engine.get_all_mappings(), [])
        self.engine.store_mapping("J. Fodor", "Jerry Fodor")
        with self.assertRaises(InvalidInputError):
            self.engine.store_mapping("J. Fodor", "Jerry A. Fodor", confidence="high")
        entry = self.engine.get_all_mappings()[0]
        self.assertEqual(entry.normalized, "Jerry Fodor")
        self.assertEqual(entry.usage_count, 1)

    def test_lookup_counts_usage_but_has_mapping_does_not(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor")
        self.assertTrue(self.engine.has_mapping("j. fodor"))
        self.assertEqual(self.engine.get_all_mappings()[0].usage_count, 1)
        self.engine.get_mapping("J. Fodor")
        self.assertTrue(self.engine.record_usage("J. Fodor"))
        self.assertFalse(self.engine.record_usage("Nobody"))
        self.assertEqual(self.engine.get_all_mappings()[0].usage_count, 3)

    def test_details_are_a_copy(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor")
        details = self.engine.get_mapping_details("J. Fodor")
        details.normalized = "changed"
        self.assertEqual(self.engine.get_mapping("J. Fodor"), "Jerry Fodor")

    def test_remove_and_clear(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor")
        self.engine.store_mapping("Smyth", "Smith")
        self.assertTrue(self.engine.remove_mapping("j. fodor"))
        self.assertFalse(self.engine.remove_mapping("j. fodor"))
        self.assertTrue(self.engine.clear_all_mappings())
        self.assertEqual(self.engine.get_all_mappings(), [])

    def test_find_similar(self) -> None:
        self.engine.store_mapping("Jerry Fodor", "Jerry A. Fodor")
        self.engine.store_mapping("Smith", "Smith")
        matches = self.engine.find_similar("Jery Fodor")
        self.assertEqual([match.raw for match in matches], ["Jerry Fodor"])
        self.assertGreaterEqual(matches[0].similarity, 0.6)
        self.assertEqual(self.engine.find_similar(""), [])
        self.assertEqual(self.engine.find_similar("Jery Fodor", top_n=0), [])

    def test_find_similar_reaches_nearby_spellings(self) -> None:
        self.engine.store_mapping("Smyth", "Smith", confidence=0.9)
        matches = self.engine.find_similar("Smith")
        self.assertEqual([match.normalized for match in matches], ["Smith"])
        self.assertAlmostEqual(matches[0].confidence, 0.9)

    def test_find_similar_orders_by_similarity(self) -> None:
        self.engine.store_mapping("Milkowsky", "Miłkowski")
        self.engine.store_mapping("Milkowski", "Miłkowski")
        matches = self.engine.find_similar("Milkowski")
        self.assertEqual(matches[0].raw, "Milkowski")
        self.assertEqual(matches[0].similarity, 1.0)
        self.assertEqual(len(matches), 2)

    def test_statistics(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor", confidence=1.0)
        self.engine.store_mapping("Smyth", "Smith", confidence=0.5)
        self.engine.record_skip_decision("Smith")
        stats = self.engine.get_statistics()
        self.assertEqual(stats["totalMappings"], 2)
        self.assertEqual(stats["totalUsage"], 2)
        self.assertEqual(stats["averageUsage"], 1.0)
        self.assertAlmostEqual(stats["averageConfidence"], 0.75)
        self.assertEqual(stats["skippedPairs"], 1)
        self.assertEqual(stats["distinctPairs"], 0)

    def test_empty_statistics(self) -> None:
        stats = self.engine.get_statistics()
        self.assertEqual(stats["totalMappings"], 0)
        self.assertEqual(stats["averageUsage"], 0)


class TestPersistenceFailures(unittest.TestCase):
    def test_failed_write_keeps_memory_state(self) -> None:
        engine = LearningEngine(FailingStore())
        with self.assertLogs("name_normalizer.learning", level="WARNING") as logs:
            stored = engine.store_mapping("J. Fodor", "Jerry Fodor")
        self.assertFalse(stored)
        self.assertIn("Failed to persist", logs.output[0])
        self.assertEqual(engine.get_mapping("J. Fodor"), "Jerry Fodor")

    def test_failed_scoped_write_keeps_memory_state(self) -> None:
        engine = LearningEngine(FailingStore())
        with self.assertLogs("name_normalizer.learning", level="WARNING"):
            stored = engine.store_mapping("Smyth", "Smythe", collection_id="thesis")
        self.assertFalse(stored)
        self.assertEqual(engine.get_mapping("Smyth", "thesis"), "Smythe")

    def test_corrupt_snapshot_starts_empty(self) -> None:
        store = MemoryStore({"name_normalizer_mappings": "{not json"})
        with self.assertLogs("name_normalizer.learning", level="WARNING"):
            engine = LearningEngine(store)
        self.assertEqual(engine.get_all_mappings(), [])
        self.assertTrue(engine.store_mapping("J. Fodor", "Jerry Fodor"))

    def test_malformed_entries_are_dropped(self) -> None:
        snapshot = {
            "j fodor": {"raw": "J. Fodor", "normalized": "Jerry Fodor"},
            "broken": {"raw": "x"},
        }
        store = MemoryStore({"name_normalizer_mappings": json.dumps(snapshot)})
        with self.assertLogs("name_normalizer.learning", level="WARNING"):
            engine = LearningEngine(store)
        self.assertEqual([entry.raw for entry in engine.get_all_mappings()], ["J. Fodor"])

    def test_sqlite_snapshot_survives_restart(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "learning.sqlite3"
            store = SQLiteStore(path, namespace="test")
            engine = LearningEngine(store)
            engine.store_mapping("J. Fodor", "Jerry Fodor")
            engine.record_skip_decision("Smith", "John")
            engine.record_distinct_pair("Smith", "Smyth")
            store.close()

            reopened = SQLiteStore(path, namespace="test")
            try:
                restored = LearningEngine(reopened)
                self.assertEqual(restored.get_mapping("J. Fodor"), "Jerry Fodor")
                self.assertTrue(restored.should_skip_pair("Smith", "John"))
                self.assertTrue(restored.is_distinct_pair("Smyth", "Smith"))
            finally:
                reopened.close()


class TestSkipDecisions(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = LearningEngine(MemoryStore())

    def test_skip_key_shape(self) -> None:
        key = self.engine.generate_skip_key("Smith", "John")
        self.assertTrue(key.startswith("name:skip:"))
        self.assertEqual(key, self.engine.generate_skip_key(" smith ", "JOHN"))
        self.assertNotEqual(key, self.engine.generate_skip_key("Smith"))

    def test_record_once(self) -> None:
        self.assertTrue(self.engine.record_skip_decision("Smith", "John"))
        self.assertFalse(self.engine.record_skip_decision("smith", "john"))
        self.assertEqual(self.engine.get_skipped_pairs_count(), 1)
        self.assertEqual(self.engine.get_skip_statistics(), {"skippedCount": 1})

    def test_should_skip_suggestion_reads_mappings_and_objects(self) -> None:
        self.engine.record_skip_decision("Smith", "John")
        self.engine.record_skip_decision("Fodor")
        self.assertTrue(self.engine.should_skip_suggestion({"surname": "Smith", "firstName": "John"}))
        self.assertTrue(self.engine.should_skip_suggestion({"primary": "Fodor"}))
        self.assertFalse(self.engine.should_skip_suggestion({"surname": "Smith"}))

    def test_filter_skipped_suggestions(self) -> None:
        self.engine.record_skip_decision("Smith")
        suggestions = [{"surname": "Smith"}, {"surname": "Fodor"}]
        self.assertEqual(self.engine.filter_skipped_suggestions(suggestions), [{"surname": "Fodor"}])

    def test_remove_and_clear(self) -> None:
        self.engine.record_skip_decision("Smith")
        self.engine.record_skip_decision("Fodor")
        self.assertTrue(self.engine.remove_skip_decision("Smith"))
        self.assertFalse(self.engine.remove_skip_decision("Smith"))
        self.assertTrue(self.engine.clear_skipped_pairs())
        self.assertEqual(self.engine.get_skipped_pairs_count(), 0)


class TestDistinctPairs(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = LearningEngine(MemoryStore())

    def test_order_and_case_insensitive(self) -> None:
        self.assertTrue(self.engine.record_distinct_pair("Smith", "Smyth"))
        self.assertTrue(self.engine.record_distinct_pair("Smyth", "Smith"))
        self.assertTrue(self.engine.is_distinct_pair("SMYTH", "smith"))
        self.assertEqual(self.engine.get_statistics()["distinctPairs"], 1)

    def test_scoped(self) -> None:
        self.engine.record_distinct_pair("Jerry Fodor", "Janet Fodor", scope="fodor")
        self.assertTrue(self.engine.is_distinct_pair("Janet Fodor", "Jerry Fodor", scope="fodor"))
        self.assertFalse(self.engine.is_distinct_pair("Janet Fodor", "Jerry Fodor"))

    def test_clear(self) -> None:
        self.engine.record_distinct_pair("Smith", "Smyth")
        self.assertTrue(self.engine.clear_distinct_pair("Smith", "Smyth"))
        self.assertFalse(self.engine.clear_distinct_pair("Smith", "Smyth"))
        self.assertFalse(self.engine.is_distinct_pair("Smith", "Smyth"))

    def test_rejects_empty_names(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.engine.record_distinct_pair("", "Smyth")


class TestExportImport(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = LearningEngine(MemoryStore())
        self.engine.store_mapping("J. Fodor", "Jerry Fodor", confidence=0.9)
        self.engine.store_mapping("Smyth", "Smith")

    def test_export_shape(self) -> None:
        exported = self.engine.export_mappings()
        self.assertEqual(exported["version"], "1.0")
        self.assertIn("exportedAt", exported)
        self.assertEqual([pair[0] for pair in exported["mappings"]], ["j fodor", "smyth"])
        self.assertEqual(exported["settings"]["similarityThreshold"], 0.6)

    def test_import_into_fresh_engine(self) -> None:
        blob = json.dumps(self.engine.export_mappings())
        other = LearningEngine(MemoryStore())
        summary = other.import_mappings(blob)
        self.assertEqual(summary.imported, 2)
        self.assertEqual(summary.skipped, 0)
        self.assertTrue(summary.persisted)
        self.assertEqual(other.get_mapping("j. fodor"), "Jerry Fodor")
        self.assertAlmostEqual(other.get_all_mappings()[0].confidence, 0.9)

    def test_replace_drops_existing(self) -> None:
        blob = {"version": "1.0", "mappings": [["a", {"raw": "A", "normalized": "B"}]]}
        self.engine.import_mappings(blob)
        self.assertEqual([entry.raw for entry in self.engine.get_all_mappings()], ["A"])

    def test_merge_keeps_existing(self) -> None:
        blob = {"version": "1.0", "mappings": [["a", {"raw": "A", "normalized": "B"}]]}
        self.engine.import_mappings(blob, replace=False)
        self.assertEqual(len(self.engine.get_all_mappings()), 3)

    def test_legacy_list_and_unknown_version(self) -> None:
        legacy = [
            {"raw": "Milkowski", "normalized": "Miłkowski", "usageCount": 4, "timestamp": "2020-01-01T00:00:00"},
            {"raw": "missing normalized"},
            "not an entry",
        ]
        summary = self.engine.import_mappings(legacy)
        self.assertEqual(summary.imported, 1)
        self.assertEqual(summary.skipped, 2)
        entry = self.engine.get_all_mappings()[0]
        self.assertEqual(entry.usage_count, 4)
        self.assertEqual(entry.created_at, "2020-01-01T00:00:00")

        with self.assertLogs("name_normalizer.learning", level="WARNING"):
            self.engine.import_mappings({"version": "9.9", "mappings": {"x": {"raw": "X", "normalized": "Y"}}})
        self.assertEqual(self.engine.get_mapping("x"), "Y")

    def test_invalid_blobs(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.engine.import_mappings("{not json")
        with self.assertLogs("name_normalizer.learning", level="WARNING"):
            with self.assertRaises(InvalidInputError):
                self.engine.import_mappings({"mappings": 5})
        self.assertEqual(len(self.engine.get_all_mappings()), 2)

    def test_import_reports_failed_write(self) -> None:
        engine = LearningEngine(FailingStore())
        with self.assertLogs("name_normalizer.learning", level="WARNING"):
            summary = engine.import_mappings([{"raw": "A", "normalized": "B"}])
        self.assertEqual(summary.imported, 1)
        self.assertFalse(summary.persisted)

    def test_import_engine_snapshot(self) -> None:
        store = MemoryStore()
        source = LearningEngine(store)
        source.store_mapping("Milkowski", "Miłkowski")
        snapshot = json.loads(store.data["name_normalizer_mappings"])
        summary = self.engine.import_mappings(snapshot)
        self.assertEqual(summary.imported, 1)
        self.assertEqual(self.engine.get_mapping("milkowski"), "Miłkowski")
        self.assertIsNone(self.engine.get_mapping("J. Fodor"))

        self.engine.import_mappings({"smyth": {"raw": "Smyth", "normalized": "Smith"}}, replace=False)
        self.assertEqual(self.engine.get_mapping("Smyth"), "Smith")
        self.assertEqual(len(self.engine.get_all_mappings()), 2)

    def test_blob_without_mappings_changes_nothing(self) -> None:
        for blob in ({"version": "2.0", "entries": []}, {}, {"smyth": "Smith"}, '{"entries": []}'):
            with self.assertRaises(InvalidInputError):
                self.engine.import_mappings(blob)
        self.assertEqual(self.engine.get_mapping("J. Fodor"), "Jerry Fodor")
        self.assertEqual(len(self.engine.get_all_mappings()), 2)


class TestCollectionScopes(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.engine = LearningEngine(self.store)
        self.engine.store_mapping("Smyth", "Smith")
        self.engine.store_mapping("Smyth", "Smythe", collection_id="thesis")

    def test_collection_mapping_wins_then_falls_back(self) -> None:
        self.assertEqual(self.engine.get_mapping("Smyth", "thesis"), "Smythe")
        self.assertEqual(self.engine.get_mapping("Smyth", "other"), "Smith")
        self.assertEqual(self.engine.get_mapping("Smyth"), "Smith")

        lookup = self.engine.get_scoped_mapping("smyth", "thesis")
        self.assertEqual(lookup.scope, "thesis")
        self.assertTrue(lookup.is_scoped)
        self.assertFalse(self.engine.get_scoped_mapping("smyth", "other").is_scoped)
        self.assertIsNone(self.engine.get_scoped_mapping("Jones", "thesis"))

    def test_scoped_mapping_is_not_visible_library_wide(self) -> None:
        self.engine.store_mapping("J. Fodor", "Jerry Fodor", collection_id="thesis")
        self.assertIsNone(self.engine.get_mapping("J. Fodor"))
        self.assertFalse(self.engine.has_mapping("J. Fodor"))
        self.assertTrue(self.engine.has_mapping("J. Fodor", "thesis"))
        self.assertEqual([entry.raw for entry in self.engine.get_all_mappings()], ["Smyth"])
        self.assertEqual([entry.raw for entry in self.engine.get_scoped_mappings("thesis")], ["Smyth", "J. Fodor"])

    def test_has_mapping_without_library_fallback(self) -> None:
        self.assertTrue(self.engine.has_mapping("Smyth", "other"))
        self.assertFalse(self.engine.has_mapping("Smyth", "other", include_global=False))
        self.assertTrue(self.engine.has_mapping("Smyth", "thesis", include_global=False))

    def test_remove_touches_one_scope(self) -> None:
        self.assertTrue(self.engine.remove_mapping("Smyth", "thesis"))
        self.assertFalse(self.engine.remove_mapping("Smyth", "thesis"))
        self.assertEqual(self.engine.get_mapping("Smyth", "thesis"), "Smith")

    def test_available_scopes_and_clear_scope(self) -> None:
        self.engine.store_mapping("Fodor, J.", "Jerry Fodor", collection_id="ch2")
        self.assertEqual(self.engine.get_available_scopes(), {"ch2": 1, "thesis": 1})
        self.assertEqual(self.engine.clear_scope("thesis"), 1)
        self.assertEqual(self.engine.clear_scope("thesis"), 0)
        self.assertEqual(self.engine.get_mapping("Smyth", "thesis"), "Smith")
        stats = self.engine.get_statistics()
        self.assertEqual(stats["scopedMappings"], 1)
        self.assertEqual(stats["scopes"], 1)
        with self.assertRaises(InvalidInputError):
            self.engine.clear_scope("  ")

    def test_find_similar_searches_the_collection_first(self) -> None:
        self.engine.store_mapping("Smythe", "Smythe")
        matches = self.engine.find_similar("Smith", collection_id="thesis")
        self.assertEqual([(match.normalized, match.scope) for match in matches], [("Smythe", "thesis"), ("Smith", None)])
        self.assertTrue(all(match.scope is None for match in self.engine.find_similar("Smith")))

    def test_scoped_snapshot_survives_restart(self) -> None:
        payload = json.loads(self.store.data["name_normalizer_scoped_mappings"])
        self.assertEqual(list(payload), ["thesis::smyth"])
        reloaded = LearningEngine(self.store)
        self.assertEqual(reloaded.get_mapping("Smyth", "thesis"), "Smythe")

    def test_export_and_import_carry_scopes(self) -> None:
        exported = self.engine.export_mappings()
        self.assertEqual([pair[0] for pair in exported["scopedMappings"]], ["thesis::smyth"])
        other = LearningEngine(MemoryStore())
        summary = other.import_mappings(json.dumps(exported))
        self.assertEqual(summary.imported, 2)
        self.assertEqual(other.get_mapping("Smyth", "thesis"), "Smythe")

    def test_import_without_scoped_section_keeps_scopes(self) -> None:
        self.engine.import_mappings([{"raw": "A", "normalized": "B"}])
        self.assertIsNone(self.engine.get_mapping("Smyth"))
        self.assertEqual(self.engine.get_mapping("Smyth", "thesis"), "Smythe")

    def test_scoped_import_needs_a_collection_key(self) -> None:
        blob = {"version": "1.0", "mappings": [], "scopedMappings": [["smyth", {"raw": "Smyth", "normalized": "X"}]]}
        summary = self.engine.import_mappings(blob, replace=False)
        self.assertEqual(summary.skipped, 1)
        self.assertEqual(self.engine.get_mapping("Smyth", "thesis"), "Smythe")


class TestMappingEntry(unittest.TestCase):
    def test_accepts_snake_and_camel_case(self) -> None:
        camel = MappingEntry.model_validate({"raw": "a", "normalized": "b", "usageCount": 2, "lastUsed": "t"})
        snake = MappingEntry.model_validate({"raw": "a", "normalized": "b", "usage_count": 2, "last_used": "t"})
        self.assertEqual(camel.usage_count, snake.usage_count)
        self.assertEqual(camel.last_used, "t")
        self.assertEqual(camel.to_json()["usageCount"], 2)

    def test_usage_count_floor(self) -> None:
        entry = MappingEntry.model_validate({"raw": "a", "normalized": "b", "usageCount": 0})
        self.assertEqual(entry.usage_count, 1)


if __name__ == "__main__":
    unittest.main()
