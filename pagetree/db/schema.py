"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency.

Node parent links reference the nodes table itself but carry no ON DELETE
action: cascading node deletion is performed by the tree service, deepest
node first. Dependent tables (blocks, comments, attachments) cascade at the
storage level as a backstop.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS workspaces (
    workspace_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS nodes (
    node_id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('section', 'subsection', 'page')),
    parent_id TEXT,
    section_id TEXT,
    subsection_id TEXT,
    title TEXT NOT NULL,
    icon TEXT,
    page_type TEXT,
    status TEXT,
    assignees TEXT NOT NULL DEFAULT '[]',
    deadline TEXT,
    properties TEXT NOT NULL DEFAULT '{}',
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (workspace_id) REFERENCES workspaces(workspace_id),
    FOREIGN KEY (parent_id) REFERENCES nodes(node_id)
);

CREATE INDEX IF NOT EXISTS idx_nodes_workspace_id ON nodes(workspace_id);
CREATE INDEX IF NOT EXISTS idx_nodes_parent_id ON nodes(parent_id);
CREATE INDEX IF NOT EXISTS idx_nodes_section_id ON nodes(section_id);
CREATE INDEX IF NOT EXISTS idx_nodes_subsection_id ON nodes(subsection_id);

CREATE TABLE IF NOT EXISTS blocks (
    block_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL,
    parent_block_id TEXT,
    block_type TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    metadata TEXT NOT NULL DEFAULT '{}',
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (page_id) REFERENCES nodes(node_id) ON DELETE CASCADE,
    FOREIGN KEY (parent_block_id) REFERENCES blocks(block_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_blocks_page_id ON blocks(page_id);
CREATE INDEX IF NOT EXISTS idx_blocks_parent_block_id ON blocks(parent_block_id);

CREATE TABLE IF NOT EXISTS comments (
    comment_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL,
    author TEXT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (page_id) REFERENCES nodes(node_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_comments_page_id ON comments(page_id);

CREATE TABLE IF NOT EXISTS attachments (
    attachment_id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL,
    original_name TEXT NOT NULL,
    stored_name TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    mime_type TEXT NOT NULL,
    uploaded_by TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (page_id) REFERENCES nodes(node_id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_attachments_page_id ON attachments(page_id);

CREATE TABLE IF NOT EXISTS events (
    sequence_num INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    workspace_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    actor TEXT,
    event_type TEXT NOT NULL,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_workspace_id ON events(workspace_id);
CREATE INDEX IF NOT EXISTS idx_events_event_type ON events(event_type);
"""
