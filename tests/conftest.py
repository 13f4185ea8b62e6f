import pytest
from datetime import datetime

from app import create_app
from app.extensions import db
from app.models import User, Subject

# 2025-03-03 is a Monday
MONDAY_8AM = datetime(2025, 3, 3, 8, 0)


@pytest.fixture()
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_subject(app):
    def _make(*, user_id='u1', push_token='token-u1', subject_id=None, name='Maths',
              schedule=None, latitude=0.0, longitude=0.0, radius_m=50.0, auto_attendance=None):
        user = db.session.get(User, user_id)
        if user is None:
            user = User(id=user_id, display_name=user_id.upper(), push_token=push_token)
            db.session.add(user)

        subject = Subject(
            user_id=user_id,
            name=name,
            schedule=schedule if schedule is not None else {'Monday': {'start': '09:00', 'end': '10:00'}},
            latitude=latitude,
            longitude=longitude,
            radius_m=radius_m,
            auto_attendance=auto_attendance
        )
        if subject_id:
            subject.id = subject_id

        db.session.add(subject)
        db.session.commit()
        return subject

    return _make
