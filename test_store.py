import json
import unittest

from codec import decode, encode
from exceptions import NotFoundError, ValidationError
from ids import SequentialIds
from models import FieldType, RelationType
from store import SchemaStore


class TestSchemaStore(unittest.TestCase):
    def setUp(self):
        self.store = SchemaStore(new_id=SequentialIds())
        self.users = self.store.add_table(
            "Users",
            [
                {"name": "id", "type": "INTEGER", "isPrimary": True},
                {"name": "email", "type": "VARCHAR", "isUnique": True, "isNullable": False},
            ],
        )
        self.posts = self.store.add_table("Posts", [{"name": "id", "type": "INTEGER"}, {"name": "user_id", "type": "INTEGER"}])

    def connect_posts_to_users(self):
        return self.store.add_relationship(
            self.posts.id, self.posts.fields[1].id, self.users.id, self.users.fields[0].id
        )

    def test_add_table_assigns_ids(self):
        self.assertEqual(self.users.id, "table-1")
        self.assertEqual([f.id for f in self.users.fields], ["field-1", "field-2"])
        self.assertEqual(self.posts.id, "table-2")
        self.assertEqual(self.users.fields[1].type, FieldType.VARCHAR)

    def test_add_table_keeps_given_field_ids(self):
        table = self.store.add_table("Tags", [{"id": "tag-pk", "name": "id", "type": "INTEGER"}])
        self.assertEqual(table.fields[0].id, "tag-pk")

    def test_add_table_trims_names(self):
        table = self.store.add_table("  Tags ", [{"name": " label ", "type": "TEXT"}])
        self.assertEqual(table.name, "Tags")
        self.assertEqual(table.fields[0].name, "label")

    def test_add_table_with_nameless_field_creates_nothing(self):
        before = self.store.to_snapshot().tables
        with self.assertRaises(ValidationError):
            self.store.add_table("Broken", [{"name": "ok", "type": "TEXT"}, {"name": "", "type": "TEXT"}])
        self.assertEqual(self.store.to_snapshot().tables, before)

    def test_add_table_rejects_empty_name_and_bad_type(self):
        with self.assertRaises(ValidationError):
            self.store.add_table("   ", [])
        with self.assertRaises(ValidationError) as ctx:
            self.store.add_table("T", [{"name": "x", "type": "BLOB"}])
        self.assertIn("INTEGER", ctx.exception.details["allowed_types"])
        self.assertEqual(len(self.store.to_snapshot().tables), 2)

    def test_update_table_replaces_name_and_keeps_id(self):
        table = self.store.update_table(self.users.id, name="Accounts")
        self.assertEqual(table.id, self.users.id)
        self.assertEqual(table.name, "Accounts")
        self.assertEqual(table.fields, self.users.fields)

    def test_update_table_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.store.update_table("nope", name="X")

    def test_update_table_dropping_field_cascades(self):
        self.connect_posts_to_users()
        self.store.update_table(self.posts.id, fields=[self.posts.fields[0]])
        self.assertEqual(self.store.to_snapshot().relationships, ())

    def test_remove_table_cascades_relationships(self):
        self.connect_posts_to_users()
        self.store.add_relationship(self.users.id, self.users.fields[0].id, self.users.id, self.users.fields[0].id)
        self.store.remove_table(self.users.id)
        schema = self.store.to_snapshot()
        self.assertEqual([t.name for t in schema.tables], ["Posts"])
        self.assertFalse(any(r.touches_table(self.users.id) for r in schema.relationships))

    def test_remove_table_is_idempotent(self):
        self.store.remove_table("nope")
        self.store.remove_table(self.posts.id)
        self.store.remove_table(self.posts.id)
        self.assertEqual(len(self.store.to_snapshot().tables), 1)

    def test_add_relationship_defaults_and_allows_duplicates(self):
        first = self.connect_posts_to_users()
        second = self.connect_posts_to_users()
        self.assertEqual(first.type, RelationType.ONE_TO_MANY)
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(len(self.store.to_snapshot().relationships), 2)

    def test_add_relationship_unknown_target_table(self):
        before = len(self.store.to_snapshot().relationships)
        with self.assertRaises(NotFoundError):
            self.store.add_relationship(self.posts.id, self.posts.fields[1].id, "missing", "field-1")
        self.assertEqual(len(self.store.to_snapshot().relationships), before)

    def test_add_relationship_unknown_field(self):
        with self.assertRaises(NotFoundError):
            self.store.add_relationship(self.posts.id, "nope", self.users.id, self.users.fields[0].id)

    def test_update_relationship_type(self):
        rel = self.connect_posts_to_users()
        updated = self.store.update_relationship_type(rel.id, "many-to-one")
        self.assertEqual(updated.type, RelationType.MANY_TO_ONE)
        self.assertEqual(self.store.get_relationship(rel.id).type, RelationType.MANY_TO_ONE)
        with self.assertRaises(NotFoundError):
            self.store.update_relationship_type("nope", "one-to-one")
        with self.assertRaises(ValidationError):
            self.store.update_relationship_type(rel.id, "some-to-some")

    def test_remove_relationship(self):
        rel = self.connect_posts_to_users()
        self.store.remove_relationship(rel.id)
        self.store.remove_relationship(rel.id)
        self.assertEqual(self.store.to_snapshot().relationships, ())

    def test_field_level_edits(self):
        field = self.store.add_field(self.users.id, {"name": "created_at", "type": "TIMESTAMP"})
        self.assertEqual(self.store.get_table(self.users.id).fields[-1], field)

        updated = self.store.update_field(self.users.id, field.id, isNullable=False, name="created")
        self.assertFalse(updated.is_nullable)
        self.assertEqual(updated.name, "created")
        self.assertEqual(updated.id, field.id)

        with self.assertRaises(ValidationError):
            self.store.update_field(self.users.id, field.id, name="")
        with self.assertRaises(NotFoundError):
            self.store.update_field(self.users.id, "nope", name="x")

    def test_remove_field_cascades(self):
        self.connect_posts_to_users()
        self.store.remove_field(self.users.id, self.users.fields[0].id)
        schema = self.store.to_snapshot()
        self.assertEqual(schema.relationships, ())
        self.assertEqual([f.name for f in schema.get_table(self.users.id).fields], ["email"])
        with self.assertRaises(NotFoundError):
            self.store.remove_field("nope", "field-1")

    def test_move_table_only_changes_position(self):
        table = self.store.move_table(self.users.id, {"x": 40, "y": 50})
        self.assertEqual((table.position.x, table.position.y), (40, 50))
        self.assertEqual(table.fields, self.users.fields)

    def test_generated_ids_skip_ids_already_in_a_loaded_schema(self):
        store = SchemaStore(new_id=SequentialIds())
        store.load(decode(json.dumps({
            "tables": [{"id": "table-1", "name": "A", "fields": [{"id": "field-1", "name": "id", "type": "INTEGER"}]}],
            "relationships": [{
                "id": "relationship-1", "sourceTableId": "table-1", "sourceFieldId": "field-1",
                "targetTableId": "table-1", "targetFieldId": "field-1", "type": "one-to-one",
            }],
        })))
        table = store.add_table("B", [])
        self.assertEqual(table.id, "table-2")
        field = store.add_field("table-1", {"name": "name", "type": "TEXT"})
        self.assertNotEqual(field.id, "field-1")
        rel = store.add_relationship("table-1", "field-1", "table-1", field.id)
        self.assertEqual(rel.id, "relationship-2")

        schema = store.to_snapshot()
        self.assertEqual([t.id for t in schema.tables], ["table-1", "table-2"])
        self.assertEqual(decode(encode(schema)), schema)

    def test_generator_that_only_repeats_is_rejected(self):
        store = SchemaStore(new_id=lambda kind: "same")
        store.add_table("A", [])
        before = store.to_snapshot()
        with self.assertRaises(ValidationError):
            store.add_table("B", [])
        self.assertIs(store.to_snapshot(), before)

    def test_names_with_lone_surrogates_rejected(self):
        with self.assertRaises(ValidationError):
            self.store.add_table("T\ud800", [])
        with self.assertRaises(ValidationError):
            self.store.add_field(self.users.id, {"name": "x\udfff", "type": "TEXT"})
        self.assertEqual(len(self.store.to_snapshot().tables), 2)

    def test_update_field_rejects_unknown_attributes(self):
        field_id = self.users.fields[0].id
        before = self.store.to_snapshot()
        with self.assertRaises(ValidationError) as ctx:
            self.store.update_field(self.users.id, field_id, isPrimry=False)
        self.assertEqual(ctx.exception.details["unknown"], ["isPrimry"])
        self.assertIs(self.store.to_snapshot(), before)

        updated = self.store.update_field(self.users.id, field_id, is_unique=True)
        self.assertTrue(updated.is_unique)

    def test_failed_updates_change_nothing(self):
        rel = self.connect_posts_to_users()
        before = self.store.to_snapshot()

        with self.assertRaises(ValidationError):
            self.store.update_table(
                self.posts.id,
                fields=[{"name": "id", "type": "INTEGER"}, {"name": "broken", "type": "BLOB"}],
            )
        with self.assertRaises(ValidationError):
            self.store.update_table(self.posts.id, name="Renamed", fields=[{"name": "", "type": "TEXT"}])
        with self.assertRaises(ValidationError):
            self.store.update_relationship_type(rel.id, "some-to-some")

        self.assertIs(self.store.to_snapshot(), before)
        self.assertEqual(self.store.get_table(self.posts.id).name, "Posts")
        self.assertEqual(self.store.get_relationship(rel.id).type, RelationType.ONE_TO_MANY)

    def test_snapshot_is_not_affected_by_later_mutations(self):
        snapshot = self.store.to_snapshot()
        self.store.add_table("Later", [])
        self.store.remove_table(self.users.id)
        self.assertEqual([t.name for t in snapshot.tables], ["Users", "Posts"])


if __name__ == "__main__":
    unittest.main()
