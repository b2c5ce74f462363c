from locust import HttpUser, task, between, TaskSet
from random import choice
import logging
import os


class UserBehavior(TaskSet):
    def on_start(self):
        # Login to get access token
        response = self.client.post("/api/auth/login", json={
            "email": os.getenv("LOCUST_EMAIL", "john@example.com"),
            "password": os.getenv("LOCUST_PASSWORD", "admin123"),
        })
        self.token = response.json().get("token") if response.status_code == 200 else None

        self.headers = {'Authorization': f'Bearer {self.token}'} if self.token else {}
        self.posts = []
        self.user_id = None
        self.get_user_info()

    def get_user_info(self):
        response = self.client.get("/api/auth/me", headers=self.headers)
        if response.status_code == 200:
            self.user_id = response.json()["user"]["id"]

    @task(3)
    def view_feed(self):
        response = self.client.get("/api/posts/feed?page=1&limit=10", headers=self.headers)
        if response.status_code == 200:
            known = {p["id"] for p in self.posts}
            self.posts.extend(p for p in response.json()["data"] if p["id"] not in known)

    @task(2)
    def toggle_like(self):
        if not self.posts:
            return
        post = choice(self.posts)
        path = "/api/posts/unlike" if self.user_id in post["likes"] else "/api/posts/like"
        response = self.client.put(path, json={"postId": post["id"]}, headers=self.headers, name="/api/posts/[like|unlike]")
        if response.status_code == 200:
            post["likes"] = response.json()["data"]["likes"]

    @task(1)
    def view_suggestions(self):
        self.client.get("/api/users/suggestions", headers=self.headers)


class WebsiteUser(HttpUser):
    tasks = [UserBehavior]
    wait_time = between(1, 5)  # Random wait time between tasks
    host = os.getenv("LOCUST_HOST", "http://localhost:8000")

    def on_start(self):
        logging.info("User started")
