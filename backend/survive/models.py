import time

from survive import db


class CheckoutSession(db.Model):
    """A boost checkout started by a player.

    Rooms live in memory only; this table is the audit trail that ties a
    provider session to the room and player it was bought for.
    """
    __tablename__ = 'checkout_session'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    room_id = db.Column(db.String(64), nullable=False, index=True)
    player_name = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(32), nullable=False, default='pending')  # pending, paid
    amount_cents = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    paid_at = db.Column(db.Float, nullable=True)

    def mark_paid(self, now=None):
        self.status = 'paid'
        self.paid_at = now or time.time()
