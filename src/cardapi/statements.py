"""SQL issued by the repositories and the ledger.

Each constant is handed to ``Store.statement`` which prepares it once and
caches it by its text. Joined child columns carry a prefix so the optional
child can be picked out of the row by name.
"""

MOVEMENT_TOP_UP = "TOP-UP"
MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_REFUND = "REFUND"

AUTH_MOVEMENT_CAPTURE = "CAPTURE"
AUTH_MOVEMENT_REFUND = "REFUND"
AUTH_MOVEMENT_REVERSAL = "REVERSAL"

# point lookups

QUERY_GET_CUSTOMERS = "SELECT id, fullname FROM customers ORDER BY id"
QUERY_GET_CUSTOMER = "SELECT id, fullname FROM customers WHERE id = :id"
QUERY_GET_VENDORS = "SELECT id, vendor_name, balance FROM vendors ORDER BY id"
QUERY_GET_VENDOR = "SELECT id, vendor_name, balance FROM vendors WHERE id = :id"
QUERY_GET_CARD = (
    "SELECT id, customer_id, balance, available, ts FROM cards WHERE id = :id"
)
QUERY_GET_AUTHORISATION = """
    SELECT id, card_id, vendor_id, amount, description, captured, refunded, reversed, ts
    FROM authorisations WHERE id = :id
"""

# aggregate reads, parent LEFT JOIN children

QUERY_GET_CUSTOMER_ALL = """
    SELECT cu.id, cu.fullname,
           c.id AS c_id, c.customer_id AS c_customer_id, c.balance AS c_balance,
           c.available AS c_available, c.ts AS c_ts
    FROM customers cu
    LEFT JOIN cards c ON c.customer_id = cu.id
    WHERE cu.id = :id
    ORDER BY c.ts, c.id
"""

QUERY_GET_VENDOR_ALL = """
    SELECT v.id, v.vendor_name, v.balance,
           a.id AS a_id, a.card_id AS a_card_id, a.vendor_id AS a_vendor_id,
           a.amount AS a_amount, a.description AS a_description,
           a.captured AS a_captured, a.refunded AS a_refunded,
           a.reversed AS a_reversed, a.ts AS a_ts
    FROM vendors v
    LEFT JOIN authorisations a ON a.vendor_id = v.id
    WHERE v.id = :id
    ORDER BY a.ts, a.id
"""

QUERY_GET_CARD_ALL = """
    SELECT c.id, c.customer_id, c.balance, c.available, c.ts,
           m.id AS m_id, m.card_id AS m_card_id, m.amount AS m_amount,
           m.description AS m_description, m.movement_type AS m_movement_type,
           m.ts AS m_ts
    FROM cards c
    LEFT JOIN movements m ON m.card_id = c.id
    WHERE c.id = :id
    ORDER BY m.ts, m.id
"""

QUERY_GET_AUTHORISATION_ALL = """
    SELECT a.id, a.card_id, a.vendor_id, a.amount, a.description,
           a.captured, a.refunded, a.reversed, a.ts,
           m.id AS m_id, m.authorisation_id AS m_authorisation_id,
           m.amount AS m_amount, m.description AS m_description,
           m.movement_type AS m_movement_type, m.ts AS m_ts
    FROM authorisations a
    LEFT JOIN auth_movements m ON m.authorisation_id = a.id
    WHERE a.id = :id
    ORDER BY m.ts, m.id
"""

# identity writes

QUERY_ADD_CUSTOMER = "INSERT INTO customers (fullname) VALUES (:fullname) RETURNING id"
QUERY_UPDATE_CUSTOMER = "UPDATE customers SET fullname = :fullname WHERE id = :id"
QUERY_ADD_VENDOR = "INSERT INTO vendors (vendor_name) VALUES (:vendor_name) RETURNING id, balance"
QUERY_UPDATE_VENDOR_NAME = "UPDATE vendors SET vendor_name = :vendor_name WHERE id = :id"
QUERY_ADD_CARD = """
    INSERT INTO cards (customer_id) VALUES (:customer_id)
    RETURNING id, customer_id, balance, available, ts
"""

# ledger writes; every money-moving UPDATE carries its invariant in the WHERE

QUERY_TOP_UP_CARD = """
    UPDATE cards SET balance = balance + :amount, available = available + :amount
    WHERE id = :id
"""

QUERY_AUTHORISE_CARD = """
    UPDATE cards SET available = available - :amount
    WHERE id = :id AND available >= :amount
"""

QUERY_CAPTURE_CARD = """
    UPDATE cards SET balance = balance - :amount
    WHERE id = :id AND balance - available >= :amount
"""

QUERY_REFUND_CARD = QUERY_TOP_UP_CARD

QUERY_REVERSE_CARD = """
    UPDATE cards SET available = available + :amount
    WHERE id = :id AND available + :amount <= balance
"""

QUERY_CAPTURE_AUTH = """
    UPDATE authorisations SET captured = captured + :amount
    WHERE id = :id AND captured + reversed + :amount <= amount
"""

QUERY_REFUND_AUTH = """
    UPDATE authorisations SET refunded = refunded + :amount
    WHERE id = :id AND refunded + :amount <= captured
"""

QUERY_REVERSE_AUTH = """
    UPDATE authorisations SET reversed = reversed + :amount
    WHERE id = :id AND captured + reversed + :amount <= amount
"""

QUERY_UPDATE_VENDOR_BALANCE = "UPDATE vendors SET balance = balance + :amount WHERE id = :id"

QUERY_ADD_AUTHORISATION = """
    INSERT INTO authorisations (card_id, vendor_id, amount, description)
    VALUES (:card_id, :vendor_id, :amount, :description)
    RETURNING id
"""

QUERY_ADD_MOVEMENT = """
    INSERT INTO movements (card_id, amount, description, movement_type)
    VALUES (:card_id, :amount, :description, :movement_type)
    RETURNING id
"""

QUERY_ADD_AUTH_MOVEMENT = """
    INSERT INTO auth_movements (authorisation_id, amount, description, movement_type)
    VALUES (:authorisation_id, :amount, :description, :movement_type)
    RETURNING id
"""
