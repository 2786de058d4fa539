from app.tasks.celery_app import celery
from app.tasks import worker_jobs


@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)


@celery.task(name="app.tasks.jobs.populate_trip_points")
def populate_trip_points(limit: int = 200):
    return worker_jobs.populate_trip_points(limit=limit)
