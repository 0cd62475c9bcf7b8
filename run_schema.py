#!/usr/bin/env python3
"""Run the Postgres schema for the Saldus ledger"""

import os
import sys

import psycopg2

DATABASE_URL = os.environ.get('DATABASE_URL')

OWNER_SETTING = "current_setting('app.current_owner', true)::uuid"

# Define each SQL statement explicitly
STATEMENTS = [
    # PART 1: EXTENSIONS
    ('Enable pgcrypto extension',
     'CREATE EXTENSION IF NOT EXISTS "pgcrypto"'),

    # PART 2: IDENTITY
    ('Create users table', '''
CREATE TABLE IF NOT EXISTS users (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  email VARCHAR(255) NOT NULL UNIQUE,
  password_hash TEXT NOT NULL,
  is_active BOOLEAN NOT NULL DEFAULT true,
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
  last_login_at TIMESTAMPTZ
)'''),

    ('Create password_reset_tokens table', '''
CREATE TABLE IF NOT EXISTS password_reset_tokens (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  token_hash VARCHAR(64) NOT NULL UNIQUE,
  expires_at TIMESTAMPTZ NOT NULL DEFAULT NOW() + INTERVAL '1 hour',
  used_at TIMESTAMPTZ,
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)'''),

    # PART 3: PROFILES (plan cache lives here)
    ('Create profiles table', '''
CREATE TABLE IF NOT EXISTS profiles (
  id UUID PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
  email VARCHAR(255),
  full_name VARCHAR(255),
  phone VARCHAR(50),
  company_name VARCHAR(255),
  commercial_phone VARCHAR(50),
  address TEXT,
  plan_type VARCHAR(20) NOT NULL DEFAULT 'free' CHECK (plan_type IN ('free', 'pro')),
  plan_start_date TIMESTAMPTZ,
  plan_expiry_date TIMESTAMPTZ,
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
  updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)'''),

    ('Create profile provisioning function', '''
CREATE OR REPLACE FUNCTION provision_profile() RETURNS TRIGGER AS $$
BEGIN
  INSERT INTO profiles (id, email, plan_type)
  VALUES (NEW.id, NEW.email, 'free')
  ON CONFLICT (id) DO NOTHING;
  RETURN NEW;
END;
$$ LANGUAGE plpgsql SECURITY DEFINER'''),

    ('Create profile provisioning trigger', '''
DROP TRIGGER IF EXISTS on_user_created ON users;
CREATE TRIGGER on_user_created
  AFTER INSERT ON users
  FOR EACH ROW EXECUTE FUNCTION provision_profile()'''),

    # PART 4: LEDGER TABLES
    ('Create clients table', '''
CREATE TABLE IF NOT EXISTS clients (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  name VARCHAR(255) NOT NULL,
  email VARCHAR(255),
  phone VARCHAR(50),
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)'''),

    ('Create transactions table', '''
CREATE TABLE IF NOT EXISTS transactions (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
  client_id UUID REFERENCES clients(id) ON DELETE SET NULL,
  amount NUMERIC(14, 2) NOT NULL CHECK (amount > 0),
  type VARCHAR(10) NOT NULL CHECK (type IN ('income', 'expense')),
  category VARCHAR(100) NOT NULL,
  description TEXT NOT NULL,
  date DATE NOT NULL,
  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)'''),

    # PART 5: INDEXES (quota window counts scan user_id + created_at)
    ('Create clients quota index', 'CREATE INDEX IF NOT EXISTS idx_clients_user_created ON clients(user_id, created_at)'),
    ('Create transactions quota index', 'CREATE INDEX IF NOT EXISTS idx_transactions_user_created ON transactions(user_id, created_at)'),
    ('Create transactions date index', 'CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, date)'),
    ('Create reset token user index', 'CREATE INDEX IF NOT EXISTS idx_reset_tokens_user ON password_reset_tokens(user_id)'),

    # PART 6: ROW LEVEL SECURITY
    ('Enable RLS on profiles', 'ALTER TABLE profiles ENABLE ROW LEVEL SECURITY'),
    ('Enable RLS on clients', 'ALTER TABLE clients ENABLE ROW LEVEL SECURITY'),
    ('Enable RLS on transactions', 'ALTER TABLE transactions ENABLE ROW LEVEL SECURITY'),

    # PART 7: RLS POLICIES
    ('Create RLS policy on profiles',
     f"DROP POLICY IF EXISTS owner_isolation ON profiles; CREATE POLICY owner_isolation ON profiles USING (id = {OWNER_SETTING})"),
    ('Create RLS policy on clients',
     f"DROP POLICY IF EXISTS owner_isolation ON clients; CREATE POLICY owner_isolation ON clients USING (user_id = {OWNER_SETTING})"),
    ('Create RLS policy on transactions',
     f"DROP POLICY IF EXISTS owner_isolation ON transactions; CREATE POLICY owner_isolation ON transactions USING (user_id = {OWNER_SETTING})"),
]


def main():
    if not DATABASE_URL:
        print("DATABASE_URL environment variable not set", file=sys.stderr)
        sys.exit(1)

    print("Connecting to Postgres...")
    conn = psycopg2.connect(DATABASE_URL)
    conn.autocommit = True
    cur = conn.cursor()

    print("Running schema...\n")
    success_count = 0
    error_count = 0

    for desc, sql in STATEMENTS:
        print(f"  {desc}...", end=" ")
        try:
            cur.execute(sql)
            print("OK")
            success_count += 1
        except psycopg2.Error as e:
            print(f"ERROR: {e}")
            error_count += 1

    print(f"\nSchema execution complete! {success_count} succeeded, {error_count} errors")

    # Verify tables
    cur.execute("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' ORDER BY table_name;")
    tables = cur.fetchall()
    print(f"\nTables created: {[t[0] for t in tables]}")

    cur.close()
    conn.close()
    print("\nConnection closed.")
    if error_count:
        sys.exit(1)


if __name__ == '__main__':
    main()
