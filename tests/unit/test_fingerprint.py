from decimal import Decimal
from cache_advisor.fingerprint import canonicalize, fingerprint, normalize, type_tag


class TestFingerprint:
    def test_literal_values_share_hash(self):
        a = fingerprint("SELECT * FROM users WHERE id = 42")
        b = fingerprint("SELECT * FROM users WHERE id = 7")
        assert a.hash == b.hash
        assert len(a.hash) == 32
        assert all(ch in "0123456789abcdef" for ch in a.hash)

    def test_strings_and_whitespace_ignored(self):
        a = fingerprint("SELECT  *\n FROM users WHERE name = 'bob'   AND age > 30")
        b = fingerprint("select * from users where name = 'alice' and age > 41")
        assert a.hash == b.hash

    def test_double_quoted_literals_replaced(self):
        assert canonicalize('SELECT * FROM t WHERE a = "x"') == "select * from t where a = ?"

    def test_in_list_collapsed(self):
        a = fingerprint("SELECT * FROM users WHERE id IN (1, 2, 3)")
        b = fingerprint("SELECT * FROM users WHERE id IN (9)")
        assert a.hash == b.hash
        assert a.canonical == "select * from users where id in (?)"

    def test_join_paren_not_treated_as_in_list(self):
        assert "join (" in canonicalize("SELECT * FROM a JOIN (SELECT id FROM b) x ON x.id = a.id")

    def test_structure_changes_hash(self):
        base = fingerprint("SELECT * FROM users WHERE id = 1")
        assert base.hash != fingerprint("SELECT * FROM orders WHERE id = 1").hash
        assert base.hash != fingerprint("SELECT * FROM users WHERE id = 1 AND active = 1").hash

    def test_canonical_text(self):
        fp = fingerprint("  SELECT * FROM t WHERE a = 'x' AND b = 3.5  ")
        assert fp.canonical == "select * from t where a = ? and b = ?"

    def test_identifiers_with_digits_kept(self):
        assert canonicalize("SELECT col1 FROM table2 t1") == "select col1 from table2 t1"

    def test_malformed_input_does_not_raise(self):
        fp = fingerprint("SELECT * FROM t WHERE name = 'unterminated AND (x")
        assert fp.canonical == "select * from t where name = 'unterminated and (x"
        assert fingerprint("").canonical == ""


class TestNormalize:
    def test_inline_number_tagged(self):
        assert normalize("SELECT * FROM users WHERE id = 42") == "select * from users where id = :number"

    def test_positional_bound_values(self):
        text = "SELECT * FROM users WHERE id = ? AND name = ? AND deleted_at IS ?"
        assert normalize(text, [5, "bob", None]) == \
            "select * from users where id = :number and name = :string and deleted_at is NULL"

    def test_named_bound_values(self):
        text = "SELECT * FROM t WHERE id = :id AND email = :email"
        assert normalize(text, {"id": 1, "email": "a@b.c"}) == "select * from t where id = :number and email = :string"

    def test_pyformat_placeholders(self):
        assert normalize("SELECT * FROM t WHERE id = %(id)s", {"id": "12"}) == "select * from t where id = :number"
        assert normalize("UPDATE t SET flag = %s", [True]) == "update t set flag = :value"

    def test_numbered_placeholders(self):
        assert normalize("SELECT * FROM t WHERE a = :2 AND b = :1", ["x", 3]) == "select * from t where a = :number and b = :string"

    def test_missing_values_leave_placeholder(self):
        assert normalize("SELECT * FROM t WHERE a = ? AND b = ?", [1]) == "select * from t where a = :number and b = ?"
        assert normalize("SELECT * FROM t WHERE a = :a", {}) == "select * from t where a = :a"

    def test_scalar_bound_value_ignored(self):
        assert normalize("SELECT * FROM t WHERE id = ?", 5) == "select * from t where id = ?"
        assert normalize("SELECT * FROM t WHERE id = ?", 2.5) == "select * from t where id = ?"

    def test_cast_syntax_not_a_placeholder(self):
        assert normalize("SELECT id::text FROM t WHERE id = :id", {"id": 3}) == "select id::text from t where id = :number"

    def test_quoted_text_not_scanned_for_placeholders(self):
        assert normalize("SELECT * FROM t WHERE a = 'what?' AND b = ?", [2]) == "select * from t where a = :string and b = :number"

    def test_quoted_identifier_case_preserved(self):
        assert normalize('SELECT "UserName" FROM t') == 'select "UserName" from t'

    def test_unbalanced_quote(self):
        assert normalize("SELECT * FROM t WHERE a = 'oops") == "select * from t where a = 'oops"


class TestTypeTag:
    def test_tags(self):
        assert type_tag(None) == "NULL"
        assert type_tag(3) == ":number"
        assert type_tag(2.5) == ":number"
        assert type_tag(Decimal("1.5")) == ":number"
        assert type_tag("1e3") == ":number"
        assert type_tag(" 42 ") == ":number"
        assert type_tag("abc") == ":string"
        assert type_tag(True) == ":value"
        assert type_tag(b"raw") == ":value"
