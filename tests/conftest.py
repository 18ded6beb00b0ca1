"""Shared Jenkinsfile samples and fixtures."""
import pytest

from jenkins2gitlab.services.pipeline.knowledge_base import PluginKnowledgeBase


SIMPLE_JENKINSFILE = """\
pipeline {
    agent any
    stages {
        stage('Build') {
            steps {
                sh 'make'
            }
        }
        stage('Test') {
            steps {
                sh 'make check'
            }
        }
        stage('Deploy') {
            steps {
                sh './deploy.sh'
            }
        }
    }
}
"""

MAVEN_JENKINSFILE = """\
pipeline {
    agent {
        docker { image 'maven:3.9-eclipse-temurin-17' }
    }
    options {
        timeout(time: 1, unit: 'HOURS')
        buildDiscarder(logRotator(numToKeepStr: '10', daysToKeepStr: '14'))
    }
    parameters {
        choice(name: 'ENV', choices: ['a', 'b', 'c'], description: 'Target environment')
        booleanParam(name: 'RUN_E2E', defaultValue: true, description: 'Run end-to-end tests')
        string(name: 'VERSION', defaultValue: '1.0.0', description: 'Release version')
    }
    environment {
        APP_NAME = 'inventory'
        REGISTRY_CREDS = credentials('registry-creds')
    }
    triggers {
        cron('H 2 * * *')
    }
    stages {
        stage('Checkout') {
            steps {
                checkout scm
            }
        }
        stage('Build') {
            steps {
                sh 'mvn -B clean package -DskipTests'
                stash name: 'jar', includes: 'target/*.jar'
            }
        }
        stage('Unit Tests') {
            options {
                timeout(time: 20, unit: 'MINUTES')
                retry(3)
            }
            steps {
                sh 'mvn -B test'
            }
            post {
                always {
                    junit 'target/surefire-reports/*.xml'
                }
            }
        }
        stage('Deploy Staging') {
            when {
                branch 'main'
            }
            steps {
                unstash 'jar'
                withCredentials([usernamePassword(credentialsId: 'deploy-creds', usernameVariable: 'DEPLOY_USER', passwordVariable: 'DEPLOY_PASS')]) {
                    sh 'scp target/*.jar $DEPLOY_USER@staging:/opt/app/'
                }
            }
        }
    }
    post {
        failure {
            slackSend(channel: '#builds', message: "Build failed: ${env.JOB_NAME}")
        }
        always {
            cleanWs()
        }
    }
}
"""

MATRIX_JENKINSFILE = """\
pipeline {
    agent any
    stages {
        stage('Matrix Tests') {
            matrix {
                axes {
                    axis {
                        name 'JDK'
                        values '11', '17'
                    }
                    axis {
                        name 'OS'
                        values 'linux', 'windows', 'mac'
                    }
                }
                stages {
                    stage('Run Tests') {
                        steps {
                            sh 'make check'
                        }
                    }
                }
            }
        }
    }
}
"""

PARALLEL_JENKINSFILE = """\
pipeline {
    agent any
    stages {
        stage('Build') {
            steps {
                sh 'npm ci'
            }
        }
        stage('Checks') {
            parallel {
                stage('Lint') {
                    steps {
                        sh 'npm run lint'
                    }
                }
                stage('Unit') {
                    steps {
                        sh 'npm test'
                    }
                }
            }
        }
    }
}
"""

SCRIPTED_JENKINSFILE = """\
node {
    stage('Checkout') {
        checkout scm
    }
    stage('Build') {
        sh './gradlew build'
    }
    stage('Test') {
        try {
            sh './gradlew test'
        } catch (err) {
            echo "Tests failed: ${err}"
            throw err
        } finally {
            junit 'build/test-results/**/*.xml'
        }
    }
}
"""

DOCKER_JENKINSFILE = """\
pipeline {
    agent any
    stages {
        stage('Build') {
            steps {
                sh 'npm ci'
            }
        }
        stage('Image') {
            steps {
                sh 'docker build -t app:latest .'
            }
        }
    }
}
"""


@pytest.fixture
def knowledge_base():
    return PluginKnowledgeBase.default()


@pytest.fixture
def simple_jenkinsfile():
    return SIMPLE_JENKINSFILE


@pytest.fixture
def maven_jenkinsfile():
    return MAVEN_JENKINSFILE


@pytest.fixture
def matrix_jenkinsfile():
    return MATRIX_JENKINSFILE


@pytest.fixture
def parallel_jenkinsfile():
    return PARALLEL_JENKINSFILE


@pytest.fixture
def scripted_jenkinsfile():
    return SCRIPTED_JENKINSFILE


@pytest.fixture
def docker_jenkinsfile():
    return DOCKER_JENKINSFILE
