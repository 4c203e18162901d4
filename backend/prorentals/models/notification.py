from datetime import datetime

from prorentals.extensions import db


class Notification(db.Model):
	__tablename__ = "notifications"

	id = db.Column(db.Integer, primary_key=True, autoincrement=True)
	# user id, "role:<name>" or "customer:<rentalId>"
	recipient = db.Column(db.String(80), nullable=False, index=True)

	type = db.Column(db.String(60), nullable=False)
	message = db.Column(db.String(300), nullable=False)
	read = db.Column(db.Boolean, default=False, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	meta_json = db.Column(db.Text, nullable=True)

	def __repr__(self) -> str:
		return f"<Notification id={self.id} recipient={self.recipient} type={self.type} read={self.read}>"
