"""Database schema DDL for the job ledger."""

KIZEO_JOBS_TABLE_DDL = """
CREATE TABLE kizeo_jobs (
  id                  BIGSERIAL PRIMARY KEY,
  kind                TEXT NOT NULL CHECK (kind IN ('pdf', 'photo')),
  status              TEXT NOT NULL DEFAULT 'pending'
                      CHECK (status IN ('pending', 'processing', 'done', 'failed')),

  tenant_code         TEXT NOT NULL,
  external_form_id    TEXT NOT NULL,
  external_record_id  TEXT NOT NULL,
  media_ref           TEXT,

  subject_id          TEXT,
  year                TEXT,
  visit_code          TEXT,
  equipment_ref       TEXT,
  client_name         TEXT,

  priority            INT NOT NULL DEFAULT 5,
  attempts            INT NOT NULL DEFAULT 0,
  max_attempts        INT NOT NULL DEFAULT 3,

  started_at          TIMESTAMPTZ,
  completed_at        TIMESTAMPTZ,
  local_path          TEXT,
  byte_size           BIGINT,
  last_error          VARCHAR(500),

  created_at          TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX idx_kizeo_jobs_artifact
ON kizeo_jobs (external_form_id, external_record_id, kind, COALESCE(media_ref, ''));

-- Chunk selection
CREATE INDEX idx_kizeo_jobs_pending_order
ON kizeo_jobs (kind, priority, created_at)
WHERE status = 'pending';

CREATE INDEX idx_kizeo_jobs_kind_status
ON kizeo_jobs (kind, status);

CREATE INDEX idx_kizeo_jobs_tenant_status
ON kizeo_jobs (tenant_code, status);

-- Stuck job reset
CREATE INDEX idx_kizeo_jobs_processing_started
ON kizeo_jobs (started_at)
WHERE status = 'processing';
"""
