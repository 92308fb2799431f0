"""
MindSpace Booking Database Schema
Supports profiles, the therapist directory, bookings and a status audit trail.
"""

SCHEMA = """
-- =============================================================================
-- 1. PROFILES - One row per principal, carries the authoritative role
-- =============================================================================
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'patient' CHECK (role IN ('patient', 'therapist', 'admin')),
    full_name TEXT,
    phone TEXT,

    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_profiles_role ON profiles(role);
CREATE INDEX IF NOT EXISTS idx_profiles_email ON profiles(email);


-- =============================================================================
-- 2. THERAPISTS - Directory entries, id shared with the owning profile
-- =============================================================================
CREATE TABLE IF NOT EXISTS therapists (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    specialization TEXT NOT NULL,
    fee INTEGER NOT NULL CHECK (fee >= 0),
    bio TEXT,
    experience INTEGER CHECK (experience >= 0),
    license TEXT,

    -- Visibility: listed publicly only when approved AND active
    active INTEGER DEFAULT 1,
    approval_status TEXT DEFAULT 'pending' CHECK (approval_status IN ('pending', 'approved', 'rejected')),

    created_at TEXT DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (id) REFERENCES profiles(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_therapists_approval_status ON therapists(approval_status);
CREATE INDEX IF NOT EXISTS idx_therapists_active ON therapists(active);
CREATE INDEX IF NOT EXISTS idx_therapists_specialization ON therapists(specialization);


-- =============================================================================
-- 3. BOOKINGS - Sessions between a patient and a therapist
-- =============================================================================
CREATE TABLE IF NOT EXISTS bookings (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    therapist_id TEXT NOT NULL,

    -- Scheduling
    session_date TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,

    -- Fee snapshot taken at booking time
    amount INTEGER NOT NULL CHECK (amount >= 0),

    status TEXT DEFAULT 'pending' CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled', 'rejected')),

    -- Patient snapshot
    patient_name TEXT,
    patient_email TEXT,

    problem_description TEXT,
    meeting_link TEXT,
    session_notes TEXT,
    next_session_notes TEXT,

    -- Patient-initiated reschedule channel
    reschedule_state TEXT DEFAULT 'none' CHECK (reschedule_state IN ('none', 'proposed', 'accepted', 'declined')),
    reschedule_new_date TEXT,
    reschedule_new_start_time TEXT,
    reschedule_reason TEXT,

    -- Therapist-initiated reschedule channel
    therapist_reschedule_state TEXT DEFAULT 'none' CHECK (therapist_reschedule_state IN ('none', 'proposed', 'accepted', 'declined')),
    therapist_reschedule_date TEXT,
    therapist_reschedule_time TEXT,
    therapist_reschedule_reason TEXT,

    -- Timestamps
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (patient_id) REFERENCES profiles(id) ON DELETE CASCADE,
    FOREIGN KEY (therapist_id) REFERENCES therapists(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_bookings_patient ON bookings(patient_id);
CREATE INDEX IF NOT EXISTS idx_bookings_therapist ON bookings(therapist_id);
CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status);
CREATE INDEX IF NOT EXISTS idx_bookings_session_date ON bookings(session_date);


-- =============================================================================
-- 4. BOOKING_STATUS_LOG - Audit trail for status changes
-- =============================================================================
CREATE TABLE IF NOT EXISTS booking_status_log (
    id TEXT PRIMARY KEY,
    booking_id TEXT NOT NULL,
    old_status TEXT,
    new_status TEXT NOT NULL,
    changed_by TEXT,
    forced INTEGER DEFAULT 0,
    changed_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (booking_id) REFERENCES bookings(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_status_log_booking ON booking_status_log(booking_id);
CREATE INDEX IF NOT EXISTS idx_status_log_time ON booking_status_log(changed_at);
"""
