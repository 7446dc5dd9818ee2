import unittest

from fastapi.testclient import TestClient

from portal.main import app


class AppHealthTests(unittest.TestCase):
    def test_health_and_routes_registered(self):
        client = TestClient(app)
        try:
            self.assertEqual(client.get('/health').json(), {'status': 'ok'})
            self.assertEqual(client.get('/api/me').status_code, 401)
        finally:
            client.close()
        paths = {route.path for route in app.routes}
        for path in (
            '/api/driver/roster',
            '/api/driver/runs/advance',
            '/api/teacher/commitments/advance',
            '/api/teacher/commitments/send',
            '/api/parent/coaching-report',
        ):
            self.assertIn(path, paths)


if __name__ == '__main__':
    unittest.main()
